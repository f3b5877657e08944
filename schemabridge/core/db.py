"""
SQLite persistence for the knowledge base - one durable row per exemplar.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional

from .config import DB_PATH, DB_TIMEOUT_SEC, ensure_db_directory


@contextmanager
def get_db(db_path: Optional[str] = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    conn = sqlite3.connect(db_path or DB_PATH, timeout=DB_TIMEOUT_SEC)
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Optional[str] = None):
    """Initialize the database with required tables."""
    ensure_db_directory(db_path)

    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # WAL lets retrieval reads proceed while an append commits
        cursor.execute("PRAGMA journal_mode=WAL")

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS exemplars (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                ts TEXT NOT NULL,          -- ISO 8601, UTC
                mode TEXT NOT NULL,        -- online|offline|dummy
                outcome TEXT NOT NULL,     -- success|error
                source TEXT NOT NULL,
                schema_version TEXT,
                confidence TEXT,
                error_reason TEXT,
                consumer_request TEXT NOT NULL,  -- JSON
                server_request TEXT,             -- JSON
                response TEXT,                   -- JSON
                server_response TEXT,            -- JSON
                embedding TEXT NOT NULL          -- JSON list of floats
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_exemplars_ts ON exemplars(ts DESC)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_exemplars_mode_ts ON exemplars(mode, ts DESC)')

        conn.commit()


def health_check(db_path: Optional[str] = None) -> bool:
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='exemplars'")
            return cursor.fetchone() is not None
    except sqlite3.Error:
        return False
