"""
User identity: primary credential check and account registration.

Password hashing is delegated to werkzeug.security.
"""
import logging

from werkzeug.security import check_password_hash, generate_password_hash

from core.errors import BadCredentialsError, ValidationError
from .accounts import AccountRepository
from .config import DEFAULT_AUTHORITIES
from .types import Account

logger = logging.getLogger(__name__)

_INVALID_CREDENTIALS = "Invalid username or password"


def authenticate(accounts: AccountRepository, username: str, password: str) -> Account:
    """Check a username/password pair.

    Unknown users and wrong passwords fail identically so the response does
    not reveal whether the username exists.

    Returns:
        The authenticated Account

    Raises:
        BadCredentialsError: If the credentials don't match
    """
    account = accounts.find_by_username(username)
    if account is None or not account.password_hash:
        logger.info(f"Login failed for unknown user: {username}")
        raise BadCredentialsError(_INVALID_CREDENTIALS)

    if not check_password_hash(account.password_hash, password):
        logger.info(f"Login failed for user {account.id}: wrong password")
        raise BadCredentialsError(_INVALID_CREDENTIALS)

    return account


def register_account(
    accounts: AccountRepository,
    username: str,
    password: str,
    authorities=DEFAULT_AUTHORITIES,
    email_address: str | None = None,
    verified: bool = False,
) -> Account:
    """Create a new account with a hashed password.

    Raises:
        ValidationError: If username or password is empty
        ConflictError: If the username is already taken
    """
    if not username or not password:
        raise ValidationError("Username and password are required")

    account = Account(
        id=None,
        username=username,
        password_hash=generate_password_hash(password),
        email_address=email_address,
        verified=verified,
        authorities=tuple(authorities),
    )
    stored = accounts.save(account)
    logger.info(f"User '{username}' created with id {stored.id}")
    return stored
