"""
Database connection factory (DB-API 2.0, SQLite).

NOT an ORM - just connection management.

Usage:
    from core.db import connect, get_connection

    # Context manager (auto commit/rollback/close)
    with connect(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM accounts WHERE id = ?", (1,))
        row = cursor.fetchone()

    # Raw connection
    conn = get_connection(db_path)
    try:
        ...
    finally:
        conn.close()
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Optional

logger = logging.getLogger(__name__)


def get_connection(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Get a DB-API 2.0 connection.

    Args:
        db_path: SQLite file path (":memory:" when None)

    Returns:
        Connection with row_factory set for dict-like access.
    """
    path = db_path or ":memory:"
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def connect(db_path: Optional[str] = None):
    """
    Context manager that yields a connection with auto commit/rollback.

    On success: commits and closes.
    On exception: rolls back and closes.

    Usage:
        with connect("/data/accounts.db") as conn:
            conn.cursor().execute("INSERT INTO ...")
    """
    conn = get_connection(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
