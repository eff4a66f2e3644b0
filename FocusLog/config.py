import socket
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_hostname() -> str:
    try:
        return socket.gethostname()
    except Exception:
        return "localhost"


class Settings(BaseSettings):
    # --- Core Paths ---
    db_path: Path = Path(__file__).parent / "storage" / "focuslog.db"
    local_tz: str = "UTC"  # Used to resolve named date ranges ("today", "week", ...)

    # --- Logging ---
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    # --- Completion service (Gemini) ---
    model_name: str = "gemini-2.5-flash"
    gemini_api_key: Optional[str] = None  # Fallback when the settings store has no apiKey
    llm_retries: int = 3
    llm_retry_delay_base_s: float = 1.0  # Exponential backoff base (1s, 2s, 4s)
    llm_thinking_budget: Optional[int] = 0  # 0 disables thinking so tiny output budgets still yield text

    # --- Categorization ---
    categorize_max_tokens: int = 20
    categorize_temperature: float = 0.3

    # --- Productivity score & insights ---
    score_max_tokens: int = 100
    score_temperature: float = 0.5
    insights_max_tokens: int = 300
    insights_temperature: float = 0.7

    # --- Batch re-categorization ---
    recategorize_chunk_size: int = Field(default=30, ge=1)
    recategorize_chunk_delay_s: float = 1.0
    recategorize_tokens_per_session: int = 12
    recategorize_temperature: float = 0.3

    # --- Window probe ---
    window_probe: Literal["activitywatch", "applescript"] = "activitywatch"
    aw_client_name: str = "focuslog_tracker"
    aw_hostname: str = Field(default_factory=_default_hostname)
    aw_window_bucket_pattern: str = "aw-watcher-window_{hostname}"
    aw_web_bucket_map: Dict[str, str] = {"Arc": "aw-watcher-web-arc_{hostname}"}
    aw_stale_after_s: float = 120.0  # Latest watcher event older than this means no live window
    probe_timeout_s: float = 5.0
    ignored_processes: List[str] = ["loginwindow", "ScreenSaverEngine", "LockApp.exe"]

    model_config = SettingsConfigDict(
        env_prefix="FOCUSLOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
