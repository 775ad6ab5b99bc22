"""
Account database schema initialization.

IMPORTANT: initialize() should ONLY be called by:
- auth_server/services.py when a SQLite repository is configured
- Test fixtures

Never call schema initialization from feature code (routes, decorators, etc.).
"""
import logging

from core.db import connect

logger = logging.getLogger(__name__)


def initialize(db_path: str) -> None:
    """Create the account tables if they don't exist."""
    with connect(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL DEFAULT '',
                email_address TEXT,
                verified INTEGER NOT NULL DEFAULT 0,
                two_factor_secret TEXT,
                using_two_factor_authentication INTEGER NOT NULL DEFAULT 0,
                version INTEGER NOT NULL DEFAULT 1,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
                CHECK (using_two_factor_authentication = 0 OR two_factor_secret IS NOT NULL)
            )
        """)

        # Authorities keep their insertion order; duplicates are allowed
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS account_authorities (
                account_id INTEGER NOT NULL,
                position INTEGER NOT NULL,
                authority TEXT NOT NULL,
                PRIMARY KEY (account_id, position),
                FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
            )
        """)

    logger.info(f"Account schema initialized at {db_path}")
