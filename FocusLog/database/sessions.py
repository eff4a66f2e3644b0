"""
Session persistence on top of the DuckDB database.
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import duckdb

from FocusLog.database import get_connection, init_database
from FocusLog.errors import PersistenceError
from FocusLog.models import AppStat, CategoryStat, DateRange, Session, Statistics, WebsiteStat

log = logging.getLogger(__name__)

SESSION_COLUMNS = "id, timestamp, process_name, window_title, url, domain, category, duration_seconds"
TOP_LIMIT = 10


def _to_db_time(value: datetime) -> datetime:
    # Stored as naive UTC.
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _range_clause(date_range: Optional[DateRange], column: str = "timestamp"):
    if date_range is None:
        return "", []
    return f"WHERE {column} BETWEEN ? AND ?", [_to_db_time(date_range.start), _to_db_time(date_range.end)]


def _row_to_session(row) -> Session:
    session_id, ts, process_name, window_title, url, domain, category, duration = row
    return Session(
        id=session_id,
        timestamp=ts.replace(tzinfo=timezone.utc),
        process_name=process_name,
        window_title=window_title or "",
        url=url,
        domain=domain,
        category=category,
        duration_seconds=max(int(duration or 0), 0),
    )


class SessionStore:
    """Durable store for closed sessions."""

    def __init__(self, db_path: Optional[Path] = None, initialize: bool = True):
        self.db_path = db_path
        if initialize:
            try:
                init_database(db_path)
            except duckdb.Error as e:
                raise PersistenceError(f"Failed to initialize session database: {e}") from e

    def save_session(self, session: Session) -> int:
        """Insert a closed session and return its id."""
        if session.duration_seconds <= 0:
            raise ValueError("Refusing to persist a session without a positive duration.")
        try:
            with get_connection(self.db_path) as conn:
                row = conn.execute(
                    """
                    INSERT INTO sessions (timestamp, process_name, window_title, url, domain, category, duration_seconds)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    RETURNING id
                    """,
                    (
                        _to_db_time(session.timestamp),
                        session.process_name,
                        session.window_title,
                        session.url,
                        session.domain,
                        session.category,
                        session.duration_seconds,
                    ),
                ).fetchone()
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to save session for {session.process_name}: {e}") from e
        session_id = int(row[0])
        log.debug(f"Saved session {session_id}: {session.process_name} ({session.category}, {session.duration_seconds}s)")
        return session_id

    def fetch_sessions(self, date_range: Optional[DateRange] = None) -> List[Session]:
        """All sessions in ``date_range`` (every session when None), oldest first."""
        where, params = _range_clause(date_range)
        query = f"SELECT {SESSION_COLUMNS} FROM sessions {where} ORDER BY timestamp, id"
        try:
            with get_connection(self.db_path) as conn:
                rows = conn.execute(query, params).fetchall()
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to fetch sessions: {e}") from e
        return [_row_to_session(r) for r in rows]

    def update_session_category(self, session_id: int, category: str) -> bool:
        try:
            with get_connection(self.db_path) as conn:
                if conn.execute("SELECT 1 FROM sessions WHERE id = ?", (session_id,)).fetchone() is None:
                    log.warning(f"Session {session_id} not found; category not updated.")
                    return False
                conn.execute("UPDATE sessions SET category = ? WHERE id = ?", (category, session_id))
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to update category of session {session_id}: {e}") from e
        return True

    def get_statistics(self, date_range: Optional[DateRange] = None) -> Statistics:
        """Category totals, top apps and top websites, all over the same range."""
        where, params = _range_clause(date_range)
        domain_where = f"{where} AND domain IS NOT NULL" if where else "WHERE domain IS NOT NULL"
        try:
            with get_connection(self.db_path) as conn:
                category_rows = conn.execute(
                    f"""
                    SELECT category, COUNT(*) AS sessions, SUM(duration_seconds) AS total_time,
                           AVG(duration_seconds) AS avg_duration
                    FROM sessions {where}
                    GROUP BY category
                    ORDER BY total_time DESC
                    """,
                    params,
                ).fetchall()
                app_rows = conn.execute(
                    f"""
                    SELECT process_name, COUNT(*) AS sessions, SUM(duration_seconds) AS total_time
                    FROM sessions {where}
                    GROUP BY process_name
                    ORDER BY total_time DESC
                    LIMIT {TOP_LIMIT}
                    """,
                    params,
                ).fetchall()
                website_rows = conn.execute(
                    f"""
                    SELECT domain, COUNT(*) AS sessions, SUM(duration_seconds) AS total_time
                    FROM sessions {domain_where}
                    GROUP BY domain
                    ORDER BY total_time DESC
                    LIMIT {TOP_LIMIT}
                    """,
                    params,
                ).fetchall()
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to compute statistics: {e}") from e

        return Statistics(
            category_stats=[
                CategoryStat(category=c, sessions=n, total_time=int(t or 0), avg_duration=float(a or 0.0))
                for c, n, t, a in category_rows
            ],
            top_apps=[AppStat(process_name=p, sessions=n, total_time=int(t or 0)) for p, n, t in app_rows],
            top_websites=[WebsiteStat(domain=d, sessions=n, total_time=int(t or 0)) for d, n, t in website_rows],
        )
