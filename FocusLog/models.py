from __future__ import annotations

from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

UNKNOWN_CATEGORY = "unknown"

RANGE_NAMES = ("today", "yesterday", "week", "month", "all")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def domain_from_url(url: Optional[str]) -> Optional[str]:
    """Hostname of ``url``, or None when it cannot be parsed."""
    if not url:
        return None
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.hostname:
        return None
    return parsed.hostname


class WindowSnapshot(BaseModel):
    """Best-effort description of the current foreground window."""

    process_name: str
    window_title: str = ""
    url: Optional[str] = None


class Session(BaseModel):
    """
    One contiguous span of focus on a single (process, title, url) identity.
    """

    id: Optional[int] = None
    timestamp: datetime = Field(..., description="UTC start of the session")
    process_name: str
    window_title: str = ""
    url: Optional[str] = None
    domain: Optional[str] = None
    category: str = UNKNOWN_CATEGORY
    duration_seconds: int = Field(default=0, ge=0)

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_datetime_utc(cls, v):
        if isinstance(v, str):
            v = datetime.fromisoformat(v.replace("Z", "+00:00"))
        if isinstance(v, datetime):
            return _as_utc(v)
        raise ValueError("Invalid datetime format")

    @property
    def identity(self) -> Tuple[str, str, Optional[str]]:
        return (self.process_name, self.window_title, self.url)

    @classmethod
    def from_snapshot(cls, snapshot: WindowSnapshot, at: datetime, category: str = UNKNOWN_CATEGORY) -> "Session":
        url = snapshot.url or None
        domain = domain_from_url(url)
        return cls(
            timestamp=at,
            process_name=snapshot.process_name,
            window_title=snapshot.window_title or "",
            # An unparseable URL is dropped, not kept as an identity component.
            url=url if domain else None,
            domain=domain,
            category=category,
        )


class AppOverride(BaseModel):
    category: Optional[str] = None
    description: Optional[str] = None


class DateRange(BaseModel):
    start: datetime
    end: datetime

    @field_validator("start", "end", mode="after")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @classmethod
    def named(cls, name: str, tz: tzinfo = timezone.utc, now: Optional[datetime] = None) -> Optional["DateRange"]:
        """Resolve ``today``/``yesterday``/``week``/``month``; ``all`` is unbounded (None)."""
        if name not in RANGE_NAMES:
            raise ValueError(f"Unknown date range '{name}'. Expected one of {RANGE_NAMES}.")
        if name == "all":
            return None
        local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
        today = local_now.date()
        days_back = {"today": 0, "yesterday": 1, "week": 7, "month": 30}[name]
        first_day = today - timedelta(days=days_back)
        last_day = first_day if name == "yesterday" else today
        start = datetime.combine(first_day, time.min, tzinfo=tz)
        end = datetime.combine(last_day, time.max, tzinfo=tz)
        return cls(start=start, end=end)


class TrackingStatus(BaseModel):
    is_tracking: bool
    current_session: Optional[Session] = None
    is_system_sleeping: bool = False
    last_boundary_time: Optional[datetime] = None


class ProductivityScore(BaseModel):
    score: int = Field(..., ge=1, le=10)
    explanation: str
    from_ai: bool = False


class RecategorizeResult(BaseModel):
    updated_count: int = 0
    total_count: int = 0
    failed_groups: List[str] = Field(default_factory=list)


class CategoryStat(BaseModel):
    category: str
    sessions: int
    total_time: int
    avg_duration: float


class AppStat(BaseModel):
    process_name: str
    sessions: int
    total_time: int


class WebsiteStat(BaseModel):
    domain: str
    sessions: int
    total_time: int


class Statistics(BaseModel):
    category_stats: List[CategoryStat] = Field(default_factory=list)
    top_apps: List[AppStat] = Field(default_factory=list)
    top_websites: List[WebsiteStat] = Field(default_factory=list)
