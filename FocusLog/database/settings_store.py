"""
User configuration persisted as JSON values in the ``settings`` table.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import duckdb

from FocusLog.database import get_connection, init_database
from FocusLog.errors import PersistenceError

log = logging.getLogger(__name__)

# Keys read by the tracker and the categorization surface.
TRACKING_INTERVAL = "trackingInterval"
AI_ENABLED = "aiEnabled"
API_KEY = "apiKey"
CATEGORIES = "categories"
CATEGORY_DESCRIPTIONS = "categoryDescriptions"
CATEGORY_WEIGHTS = "categoryWeights"
APP_OVERRIDES = "appOverrides"
CUSTOM_CATEGORIZATION_PROMPT = "customCategorizationPrompt"

DEFAULT_TRACKING_INTERVAL_S = 30
MIN_TRACKING_INTERVAL_S = 5


class SettingsStore:
    """Key/value access to user configuration. Values are never cached."""

    def __init__(self, db_path: Optional[Path] = None, initialize: bool = True):
        self.db_path = db_path
        if initialize:
            try:
                init_database(db_path)
            except duckdb.Error as e:
                raise PersistenceError(f"Failed to initialize settings database: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        try:
            with get_connection(self.db_path) as conn:
                row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        except duckdb.Error as e:
            log.error(f"Failed to read setting '{key}': {e}")
            return default
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except (TypeError, json.JSONDecodeError):
            return row[0]

    def set(self, key: str, value: Any) -> None:
        try:
            with get_connection(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT (key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                    """,
                    (key, json.dumps(value), datetime.now(timezone.utc).replace(tzinfo=None)),
                )
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to write setting '{key}': {e}") from e

    def all(self) -> Dict[str, Any]:
        try:
            with get_connection(self.db_path) as conn:
                rows = conn.execute("SELECT key, value FROM settings ORDER BY key").fetchall()
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to read settings: {e}") from e
        out = {}
        for key, value in rows:
            try:
                out[key] = json.loads(value)
            except (TypeError, json.JSONDecodeError):
                out[key] = value
        return out

    def tracking_interval(self) -> int:
        """Polling interval in seconds; anything invalid or below the minimum means the default."""
        value = self.get(TRACKING_INTERVAL, DEFAULT_TRACKING_INTERVAL_S)
        if isinstance(value, bool) or not isinstance(value, int) or value < MIN_TRACKING_INTERVAL_S:
            return DEFAULT_TRACKING_INTERVAL_S
        return value
