from datetime import datetime, timedelta, timezone
from pathlib import Path

import duckdb
import pytest

import FocusLog
from FocusLog.config import Settings
from FocusLog.database import get_connection, init_database
from FocusLog.database.sessions import SessionStore
from FocusLog.database.settings_store import (
    DEFAULT_TRACKING_INTERVAL_S,
    TRACKING_INTERVAL,
    SettingsStore,
)
from FocusLog.errors import PersistenceError
from FocusLog.models import DateRange, Session

from conftest import T0


def make(process, minutes, duration, category="work", url=None, domain=None):
    return Session(
        timestamp=T0 + timedelta(minutes=minutes),
        process_name=process,
        window_title=f"{process} title",
        url=url,
        domain=domain,
        category=category,
        duration_seconds=duration,
    )


def test_database_schema_creation(tmp_path, monkeypatch):
    db_path = tmp_path / "nested" / "focuslog.db"
    monkeypatch.setattr("FocusLog.database.DB_PATH", db_path)
    init_database()
    init_database()  # idempotent
    assert db_path.exists()
    with duckdb.connect(str(db_path)) as conn:
        tables = set(row[0] for row in conn.execute("SHOW TABLES").fetchall())
        assert {"sessions", "settings"} <= tables
        columns = set(row[0] for row in conn.execute("DESCRIBE sessions").fetchall())
        assert {"id", "timestamp", "process_name", "window_title", "url", "domain", "category",
                "duration_seconds"} <= columns


def test_save_and_fetch_in_timestamp_order(session_store):
    later = session_store.save_session(make("Slack", 10, 30))
    earlier = session_store.save_session(make("Code", 0, 600))
    assert later != earlier

    sessions = session_store.fetch_sessions()
    assert [s.process_name for s in sessions] == ["Code", "Slack"]
    assert sessions[0].id == earlier
    assert sessions[0].timestamp == T0
    assert sessions[0].timestamp.tzinfo is not None


def test_save_rejects_non_positive_duration(session_store):
    with pytest.raises(ValueError):
        session_store.save_session(make("Code", 0, 0))
    assert session_store.fetch_sessions() == []


def test_fetch_by_date_range(session_store):
    session_store.save_session(make("Code", 0, 60))
    session_store.save_session(make("Code", 60 * 24 * 2, 60))
    day = DateRange(start=T0 - timedelta(hours=1), end=T0 + timedelta(hours=1))
    assert len(session_store.fetch_sessions(day)) == 1
    assert len(session_store.fetch_sessions(None)) == 2


def test_update_session_category(session_store):
    session_id = session_store.save_session(make("Code", 0, 60))
    assert session_store.update_session_category(session_id, "break") is True
    assert session_store.fetch_sessions()[0].category == "break"
    assert session_store.update_session_category(9999, "break") is False


def test_get_statistics(session_store):
    session_store.save_session(make("Code", 0, 600, "development"))
    session_store.save_session(make("Code", 10, 300, "development"))
    session_store.save_session(make("Arc", 20, 120, "social_media", "https://youtube.com/x", "youtube.com"))

    stats = session_store.get_statistics()

    assert [(c.category, c.sessions, c.total_time) for c in stats.category_stats] == [
        ("development", 2, 900),
        ("social_media", 1, 120),
    ]
    assert stats.category_stats[0].avg_duration == 450.0
    assert [(a.process_name, a.total_time) for a in stats.top_apps] == [("Code", 900), ("Arc", 120)]
    assert [(w.domain, w.sessions) for w in stats.top_websites] == [("youtube.com", 1)]


def test_store_errors_are_wrapped(session_store, monkeypatch):
    def broken(db_path=None):
        raise duckdb.IOException("locked")

    monkeypatch.setattr("FocusLog.database.sessions.get_connection", broken)
    with pytest.raises(PersistenceError):
        session_store.save_session(make("Code", 0, 60))
    with pytest.raises(PersistenceError):
        session_store.fetch_sessions()


def test_settings_round_trip_json_values(settings_store):
    settings_store.set("categories", ["work", "break"])
    settings_store.set("appOverrides", {"Figma": {"category": "design"}})
    settings_store.set("aiEnabled", False)
    assert settings_store.get("categories") == ["work", "break"]
    assert settings_store.get("appOverrides") == {"Figma": {"category": "design"}}
    assert settings_store.get("aiEnabled") is False
    assert settings_store.get("missing", "fallback") == "fallback"

    settings_store.set("aiEnabled", True)
    assert settings_store.all()["aiEnabled"] is True


@pytest.mark.parametrize("stored,expected", [
    (None, DEFAULT_TRACKING_INTERVAL_S),
    (5, 5),
    (60, 60),
    (4, DEFAULT_TRACKING_INTERVAL_S),
    ("10", DEFAULT_TRACKING_INTERVAL_S),
    (12.5, DEFAULT_TRACKING_INTERVAL_S),
])
def test_tracking_interval_validation(settings_store, stored, expected):
    if stored is not None:
        settings_store.set(TRACKING_INTERVAL, stored)
    assert settings_store.tracking_interval() == expected


def test_settings_read_failure_returns_default(settings_store, monkeypatch):
    def broken(db_path=None):
        raise duckdb.IOException("locked")

    monkeypatch.setattr("FocusLog.database.settings_store.get_connection", broken)
    assert settings_store.get("categories", ["x"]) == ["x"]


def test_stores_share_one_file(settings):
    SessionStore(settings.db_path).save_session(make("Code", 0, 60))
    SettingsStore(settings.db_path).set("apiKey", "k")
    with get_connection(settings.db_path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0] == 1
        assert conn.execute("SELECT value FROM settings WHERE key = 'apiKey'").fetchone()[0] == '"k"'


def test_named_date_ranges():
    now = datetime(2025, 6, 12, 15, 30, tzinfo=timezone.utc)
    today = DateRange.named("today", now=now)
    assert today.start == datetime(2025, 6, 12, tzinfo=timezone.utc)
    assert today.end.date() == now.date()
    yesterday = DateRange.named("yesterday", now=now)
    assert yesterday.start.day == 11 and yesterday.end.day == 11
    assert DateRange.named("week", now=now).start.day == 5
    assert DateRange.named("all") is None
    with pytest.raises(ValueError):
        DateRange.named("fortnight")


def test_default_db_path_lives_in_the_package(monkeypatch, tmp_path):
    monkeypatch.delenv("FOCUSLOG_DB_PATH", raising=False)
    monkeypatch.chdir(tmp_path)
    path = Settings(_env_file=None).db_path
    assert path == Path(FocusLog.__file__).parent / "storage" / "focuslog.db"
    assert path.is_absolute()
