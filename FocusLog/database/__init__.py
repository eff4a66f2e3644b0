# Database schema and utilities for FocusLog

from pathlib import Path
from typing import Optional

import duckdb

from FocusLog.config import Settings

DB_PATH = Settings().db_path

SCHEMA_QUERIES = [
    "CREATE SEQUENCE IF NOT EXISTS seq_session_id START 1;",
    '''
    CREATE TABLE IF NOT EXISTS sessions (
        id INTEGER PRIMARY KEY DEFAULT nextval('seq_session_id'),
        timestamp TIMESTAMP NOT NULL,
        process_name VARCHAR NOT NULL,
        window_title VARCHAR,
        url VARCHAR,
        domain VARCHAR,
        category VARCHAR NOT NULL,
        duration_seconds INTEGER DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    ''',
    'CREATE INDEX IF NOT EXISTS idx_sessions_timestamp ON sessions(timestamp);',
    '''
    CREATE TABLE IF NOT EXISTS settings (
        key VARCHAR PRIMARY KEY,
        value VARCHAR NOT NULL,
        updated_at TIMESTAMP
    );
    ''',
]


def get_connection(db_path: Optional[Path] = None):
    path = Path(db_path or DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path))


def init_database(db_path: Optional[Path] = None):
    with get_connection(db_path) as conn:
        for query in SCHEMA_QUERIES:
            conn.execute(query)
