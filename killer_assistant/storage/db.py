"""
Database connection management.

Provides the SQLite connection backing the account store and interaction log.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "killer_assistant.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled and a
        busy timeout so concurrent writers wait instead of failing
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=10.0)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
