"""
Auth domain types - no dependencies on other auth modules.

NOTE: Keep this minimal. Only add types here if they are:
1. Used by 3+ auth submodules, AND
2. Would otherwise cause circular imports
"""
import base64
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .config import ROLE_PREFIX, TOKEN_REFRESH_SCOPE, TOKEN_TYPE, TWO_FACTOR_AUTHENTICATION_SCOPE


class SecurityRole(str, Enum):
    """Primary roles an account can hold."""
    ROLE_USER = "ROLE_USER"
    ROLE_MODERATOR = "ROLE_MODERATOR"
    ROLE_ADMIN = "ROLE_ADMIN"

    @classmethod
    def primary_of(cls, authorities) -> Optional["SecurityRole"]:
        """Return the first recognisable role in authorities, if any."""
        known = {role.value for role in cls}
        for authority in authorities or ():
            if authority.startswith(ROLE_PREFIX) and authority in known:
                return cls(authority)
        return None


class TwoFactorState(str, Enum):
    """Two-factor lifecycle of an account."""
    DISABLED = "disabled"
    PENDING_VERIFICATION = "pending_verification"
    ENABLED = "enabled"


class TokenKind(str, Enum):
    """Purpose of a token, derived from its scopes."""
    ACCESS = "access"
    REFRESH = "refresh"
    TWO_FACTOR = "two_factor"

    @classmethod
    def from_scopes(cls, scopes) -> "TokenKind":
        scopes = list(scopes or ())
        if scopes == [TOKEN_REFRESH_SCOPE]:
            return cls.REFRESH
        if scopes == [TWO_FACTOR_AUTHENTICATION_SCOPE]:
            return cls.TWO_FACTOR
        return cls.ACCESS


@dataclass(frozen=True)
class Account:
    """User account as stored by the account repository (immutable).

    Changes are made with dataclasses.replace() and persisted through
    AccountRepository.save(), which bumps the version.
    """
    id: Optional[int]
    username: str
    password_hash: str = field(default="", repr=False)
    email_address: Optional[str] = None
    verified: bool = False
    authorities: Optional[tuple[str, ...]] = ()
    two_factor_secret: Optional[str] = field(default=None, repr=False)
    using_two_factor_authentication: bool = False
    version: int = 0

    def __post_init__(self):
        if not self.username:
            raise ValueError("Account username must not be empty")
        if self.authorities is not None and not isinstance(self.authorities, tuple):
            object.__setattr__(self, "authorities", tuple(self.authorities))
        if self.using_two_factor_authentication and not self.two_factor_secret:
            raise ValueError("Two-factor authentication cannot be enabled without a secret")

    @property
    def two_factor_state(self) -> TwoFactorState:
        if self.using_two_factor_authentication:
            return TwoFactorState.ENABLED
        if self.two_factor_secret:
            return TwoFactorState.PENDING_VERIFICATION
        return TwoFactorState.DISABLED

    def to_response(self) -> dict:
        """Public view of the account (no password hash, no secret)."""
        return {
            "id": self.id,
            "username": self.username,
            "email_address": self.email_address,
            "verified": self.verified,
            "authorities": list(self.authorities or ()),
            "using_two_factor_authentication": self.using_two_factor_authentication,
            "two_factor_state": self.two_factor_state.value,
        }


@dataclass(frozen=True)
class TokenClaims:
    """Decoded JWT claims (immutable)."""
    token_id: str  # jti
    issuer: str
    subject: str  # username
    audience: str
    scopes: tuple[str, ...]
    user_id: int
    verified: bool
    issued_at: datetime
    expires_at: datetime

    @property
    def kind(self) -> TokenKind:
        return TokenKind.from_scopes(self.scopes)


@dataclass(frozen=True)
class TokenPayload:
    """Tokens handed back to the client after an authentication step."""
    access_token: str
    expires_in: int  # seconds
    refresh_token: Optional[str] = None
    scope: str = ""
    two_factor_required: bool = False
    token_type: str = TOKEN_TYPE

    def to_dict(self) -> dict:
        return {
            "token_type": self.token_type,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "scope": self.scope,
            "two_factor_required": self.two_factor_required,
        }


@dataclass(frozen=True)
class EnrollmentResult:
    """Outcome of starting two-factor enrollment."""
    account_id: int
    qr_image: bytes = field(repr=False)  # PNG
    manual_key: str = field(repr=False)

    def qr_data_uri(self) -> str:
        return f"data:image/png;base64,{base64.b64encode(self.qr_image).decode()}"
