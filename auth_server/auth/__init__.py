"""
Authentication module.

Public API:
- Tokens: TokenIssuer, get_token_from_request
- Outcomes: AuthenticationOutcomeHandler
- Identity: authenticate, register_account
- Accounts: AccountRepository, InMemoryAccountRepository, SqliteAccountRepository,
  build_secret_cipher
- Decorators: jwt_required, owner_or_admin_required

Import Rules:
- External callers: Use `from auth_server.auth import X` (this facade)
- Internal auth modules: Use `from .submodule import X` (direct imports)
"""

from .config import (
    DEFAULT_AUTHORITIES,
    MAX_EMAIL_LENGTH,
    MAX_PASSWORD_LENGTH,
    MAX_USERNAME_LENGTH,
)
from .types import (
    Account,
    EnrollmentResult,
    SecurityRole,
    TokenClaims,
    TokenKind,
    TokenPayload,
    TwoFactorState,
)
from .tokens import TokenIssuer, get_token_from_request
from .accounts import (
    AccountRepository,
    InMemoryAccountRepository,
    SqliteAccountRepository,
    build_secret_cipher,
)
from .identity import authenticate, register_account
from .outcome import AuthenticationOutcomeHandler
from .decorators import jwt_required, owner_or_admin_required
from .schema import initialize as init_database

__all__ = [
    # Limits
    "DEFAULT_AUTHORITIES",
    "MAX_EMAIL_LENGTH",
    "MAX_PASSWORD_LENGTH",
    "MAX_USERNAME_LENGTH",

    # Types
    "Account",
    "EnrollmentResult",
    "SecurityRole",
    "TokenClaims",
    "TokenKind",
    "TokenPayload",
    "TwoFactorState",

    # Tokens
    "TokenIssuer",
    "get_token_from_request",

    # Accounts
    "AccountRepository",
    "InMemoryAccountRepository",
    "SqliteAccountRepository",
    "build_secret_cipher",
    "init_database",

    # Identity
    "authenticate",
    "register_account",

    # Outcomes
    "AuthenticationOutcomeHandler",

    # Decorators
    "jwt_required",
    "owner_or_admin_required",
]
