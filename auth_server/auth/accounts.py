"""
Account persistence.

Provides the AccountRepository contract used by the authentication core and
two implementations:
- InMemoryAccountRepository: default when no ACCOUNTS_DB_PATH is configured
- SqliteAccountRepository: durable storage through core.db

SqliteAccountRepository encrypts the TOTP secret at rest with Fernet.

Both implement optimistic locking: save() only succeeds when the stored
version matches the version the caller loaded, so two read-modify-write
sequences on the same account cannot interleave silently.
"""
import base64
import dataclasses
import hashlib
import logging
import sqlite3
import threading
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken

from core.db import connect
from core.errors import ConcurrentModificationError, ConflictError, InvalidStateError, NotFoundError
from .types import Account

logger = logging.getLogger(__name__)


class AccountRepository(Protocol):
    """Storage contract for accounts."""

    def find_by_id(self, account_id: int) -> Account:
        """Return the account or raise NotFoundError."""
        ...

    def find_by_username(self, username: str) -> Optional[Account]:
        ...

    def save(self, account: Account) -> Account:
        """Insert (id None) or update by ID; returns the stored account with its new version.

        Raises:
            ConcurrentModificationError: If the stored version differs from account.version
            ConflictError: If the username is taken by another account
        """
        ...


# =============================================================================
# In-memory
# =============================================================================

class InMemoryAccountRepository:
    """Thread-safe in-memory account store."""

    def __init__(self):
        self._accounts: dict[int, Account] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def find_by_id(self, account_id: int) -> Account:
        with self._lock:
            account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError(f"User {account_id} not found")
        return account

    def find_by_username(self, username: str) -> Optional[Account]:
        with self._lock:
            for account in self._accounts.values():
                if account.username == username:
                    return account
        return None

    def save(self, account: Account) -> Account:
        with self._lock:
            for other in self._accounts.values():
                if other.username == account.username and other.id != account.id:
                    raise ConflictError(f"User '{account.username}' already exists")

            if account.id is None:
                stored = dataclasses.replace(account, id=self._next_id, version=1)
                self._next_id += 1
            else:
                current = self._accounts.get(account.id)
                if current is None:
                    stored = dataclasses.replace(account, version=1)
                elif current.version != account.version:
                    raise ConcurrentModificationError(
                        f"User {account.id} was modified concurrently, reload and retry"
                    )
                else:
                    stored = dataclasses.replace(account, version=account.version + 1)
                self._next_id = max(self._next_id, account.id + 1)

            self._accounts[stored.id] = stored
        return stored


# =============================================================================
# Secret Encryption
# =============================================================================

def build_secret_cipher(two_factor_settings, jwt_secret: str = "") -> Fernet:
    """Fernet cipher for two-factor secrets at rest.

    Priority:
    1. TWO_FACTOR_ENCRYPTION_KEY (required outside TESTING, see config.settings)
    2. Derived from the JWT secret (TESTING only, logged as warning)
    """
    key = two_factor_settings.encryption_key.get_secret_value()
    if key:
        return Fernet(key)

    if not jwt_secret:
        raise InvalidStateError("No key available to encrypt two-factor secrets")

    logger.warning("TWO_FACTOR_ENCRYPTION_KEY not set, deriving it from JWT secret")
    derived = hashlib.sha256(jwt_secret.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(derived))


# =============================================================================
# SQLite
# =============================================================================

class SqliteAccountRepository:
    """Account store backed by a SQLite file (see schema.initialize).

    The two_factor_secret column holds the Fernet token of the secret, never
    the base32 secret itself.
    """

    def __init__(self, db_path: str, cipher: Fernet):
        self.db_path = db_path
        self._cipher = cipher

    def __repr__(self):
        return f"SqliteAccountRepository(db_path={self.db_path!r})"

    def _encrypt_secret(self, secret: Optional[str]) -> Optional[str]:
        if secret is None:
            return None
        return self._cipher.encrypt(secret.encode()).decode()

    def _decrypt_secret(self, account_id: int, stored: Optional[str]) -> Optional[str]:
        if stored is None:
            return None
        try:
            return self._cipher.decrypt(stored.encode()).decode()
        except InvalidToken as e:
            raise InvalidStateError(
                f"Two-factor secret of user {account_id} cannot be decrypted with the configured key"
            ) from e

    def _row_to_account(self, conn, row) -> Account:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT authority FROM account_authorities WHERE account_id = ? ORDER BY position",
            (row["id"],),
        )
        authorities = tuple(r["authority"] for r in cursor.fetchall())
        return Account(
            id=row["id"],
            username=row["username"],
            password_hash=row["password_hash"],
            email_address=row["email_address"],
            verified=bool(row["verified"]),
            authorities=authorities,
            two_factor_secret=self._decrypt_secret(row["id"], row["two_factor_secret"]),
            using_two_factor_authentication=bool(row["using_two_factor_authentication"]),
            version=row["version"],
        )

    def find_by_id(self, account_id: int) -> Account:
        with connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM accounts WHERE id = ?", (account_id,))
            row = cursor.fetchone()
            if row is None:
                raise NotFoundError(f"User {account_id} not found")
            return self._row_to_account(conn, row)

    def find_by_username(self, username: str) -> Optional[Account]:
        with connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM accounts WHERE username = ?", (username,))
            row = cursor.fetchone()
            return self._row_to_account(conn, row) if row else None

    def _username_taken(self, cursor, account: Account) -> bool:
        cursor.execute(
            "SELECT id FROM accounts WHERE username = ? AND id IS NOT ?",
            (account.username, account.id),
        )
        return cursor.fetchone() is not None

    def save(self, account: Account) -> Account:
        try:
            stored = self._save(account)
        except sqlite3.IntegrityError as e:
            # A concurrent insert can slip past the username pre-check
            logger.info(f"Integrity error saving user '{account.username}': {e}")
            raise ConflictError(f"User '{account.username}' already exists") from e

        logger.debug(f"Saved user {stored.id} at version {stored.version}")
        return stored

    def _save(self, account: Account) -> Account:
        with connect(self.db_path) as conn:
            cursor = conn.cursor()

            if self._username_taken(cursor, account):
                raise ConflictError(f"User '{account.username}' already exists")

            values = (
                account.username,
                account.password_hash,
                account.email_address,
                int(account.verified),
                self._encrypt_secret(account.two_factor_secret),
                int(account.using_two_factor_authentication),
            )

            if account.id is None:
                cursor.execute(
                    """
                    INSERT INTO accounts (username, password_hash, email_address, verified,
                                          two_factor_secret, using_two_factor_authentication, version)
                    VALUES (?, ?, ?, ?, ?, ?, 1)
                    """,
                    values,
                )
                stored = dataclasses.replace(account, id=cursor.lastrowid, version=1)
            else:
                cursor.execute(
                    """
                    UPDATE accounts
                    SET username = ?, password_hash = ?, email_address = ?, verified = ?,
                        two_factor_secret = ?, using_two_factor_authentication = ?,
                        version = version + 1, updated_at = CURRENT_TIMESTAMP
                    WHERE id = ? AND version = ?
                    """,
                    values + (account.id, account.version),
                )
                if cursor.rowcount == 0:
                    cursor.execute("SELECT version FROM accounts WHERE id = ?", (account.id,))
                    if cursor.fetchone() is not None:
                        raise ConcurrentModificationError(
                            f"User {account.id} was modified concurrently, reload and retry"
                        )
                    cursor.execute(
                        """
                        INSERT INTO accounts (id, username, password_hash, email_address, verified,
                                              two_factor_secret, using_two_factor_authentication, version)
                        VALUES (?, ?, ?, ?, ?, ?, ?, 1)
                        """,
                        (account.id,) + values,
                    )
                    stored = dataclasses.replace(account, version=1)
                else:
                    stored = dataclasses.replace(account, version=account.version + 1)

            cursor.execute("DELETE FROM account_authorities WHERE account_id = ?", (stored.id,))
            cursor.executemany(
                "INSERT INTO account_authorities (account_id, position, authority) VALUES (?, ?, ?)",
                [(stored.id, position, authority) for position, authority in enumerate(stored.authorities or ())],
            )

        return stored
