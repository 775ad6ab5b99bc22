"""
JWT token creation and decoding.

Handles:
- Access token creation (scopes = the account's authorities)
- Refresh token creation (scopes = ["TOKEN_REFRESH"])
- Pending two-factor token creation (scopes = ["TWO_FACTOR_AUTHENTICATION"])
- Token decoding with kind enforcement

All tokens are HS512-signed with the same key and carry the same claim set:
jti, iss, sub, aud, iat, exp, scopes, userId, verified. The token kind is
encoded only through the reserved scope values, so an access token can never
be confused with a refresh or pending two-factor token.
"""
import uuid
import logging
from datetime import datetime, timedelta, timezone

import jwt
from flask import request

from core.errors import InvalidStateError, InvalidTokenError
from .config import RESERVED_SCOPES, TOKEN_REFRESH_SCOPE, TWO_FACTOR_AUTHENTICATION_SCOPE
from .types import Account, TokenClaims, TokenKind

logger = logging.getLogger(__name__)

_REQUIRED_CLAIMS = ["jti", "iss", "sub", "aud", "iat", "exp"]


class TokenIssuer:
    """Mints and decodes signed, expiring tokens."""

    def __init__(
        self,
        secret_key: str,
        access_token_ttl: timedelta,
        refresh_token_ttl: timedelta,
        two_factor_token_ttl: timedelta,
        issuer: str = "Trak Library",
        audience: str = "https://api.traklibrary.com",
        algorithm: str = "HS512",
    ):
        if not secret_key:
            raise InvalidStateError("Token signing key is not configured")
        self._secret_key = secret_key
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm
        self._ttls = {
            TokenKind.ACCESS: access_token_ttl,
            TokenKind.REFRESH: refresh_token_ttl,
            TokenKind.TWO_FACTOR: two_factor_token_ttl,
        }

    @classmethod
    def from_settings(cls, auth_settings) -> "TokenIssuer":
        """Build an issuer from config.settings.AuthSettings."""
        return cls(
            secret_key=auth_settings.jwt_secret.get_secret_value(),
            access_token_ttl=auth_settings.access_token_ttl,
            refresh_token_ttl=auth_settings.refresh_token_ttl,
            two_factor_token_ttl=auth_settings.two_factor_token_ttl,
            issuer=auth_settings.token_issuer,
            audience=auth_settings.token_audience,
            algorithm=auth_settings.jwt_algorithm,
        )

    def __repr__(self):
        return f"TokenIssuer(issuer={self.issuer!r}, audience={self.audience!r}, algorithm={self.algorithm!r})"

    def ttl_for(self, kind: TokenKind) -> timedelta:
        return self._ttls[kind]

    # =========================================================================
    # Token Creation
    # =========================================================================

    def create_access_token(self, account: Account) -> str:
        """Create an access token carrying the account's authorities as scopes.

        Args:
            account: Authenticated account

        Returns:
            Encoded JWT access token

        Raises:
            InvalidStateError: If the account has no authorities, or holds a
                reserved scope that would disguise the token's kind
        """
        # Without authorities the token would grant access to nothing.
        if not account.authorities:
            raise InvalidStateError("Cannot create an access token for a user with no roles")

        reserved = RESERVED_SCOPES.intersection(account.authorities)
        if reserved:
            raise InvalidStateError(
                f"Cannot create an access token carrying reserved scopes: {', '.join(sorted(reserved))}"
            )

        return self._create_token(account, list(account.authorities), TokenKind.ACCESS)

    def create_refresh_token(self, account: Account) -> str:
        """Create a refresh token (longer-lived, only good for new access tokens)."""
        return self._create_token(account, [TOKEN_REFRESH_SCOPE], TokenKind.REFRESH)

    def create_two_factor_authentication_token(self, account: Account) -> str:
        """Create a short-lived token proving the password step of a two-factor login."""
        return self._create_token(account, [TWO_FACTOR_AUTHENTICATION_SCOPE], TokenKind.TWO_FACTOR)

    def _create_token(self, account: Account, scopes: list[str], kind: TokenKind) -> str:
        now = datetime.now(timezone.utc)
        jti = str(uuid.uuid4())
        payload = {
            "jti": jti,
            "iss": self.issuer,
            "sub": account.username,
            "aud": self.audience,
            "scopes": scopes,
            "userId": account.id,
            "verified": account.verified,
            "iat": now,
            "exp": now + self._ttls[kind],
        }
        token = jwt.encode(payload, self._secret_key, algorithm=self.algorithm)
        logger.debug(f"Issued {kind.value} token jti={jti} for user_id={account.id}")
        return token

    # =========================================================================
    # Token Decoding
    # =========================================================================

    def decode_token(self, token: str, expected_kind: TokenKind = TokenKind.ACCESS) -> TokenClaims:
        """Decode and validate a token of the expected kind.

        Args:
            token: Encoded JWT
            expected_kind: Kind the caller is prepared to accept

        Returns:
            TokenClaims

        Raises:
            InvalidTokenError: If the token is malformed, badly signed, expired,
                issued by someone else, or of another kind
        """
        if not token:
            raise InvalidTokenError("Missing token")

        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected token: {type(e).__name__}")
            raise InvalidTokenError("Invalid token")

        claims = TokenClaims(
            token_id=payload["jti"],
            issuer=payload["iss"],
            subject=payload["sub"],
            audience=payload["aud"],
            scopes=tuple(payload.get("scopes") or ()),
            user_id=payload.get("userId"),
            verified=bool(payload.get("verified", False)),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

        if claims.kind is not expected_kind:
            logger.info(f"Rejected {claims.kind.value} token jti={claims.token_id} where {expected_kind.value} was expected")
            raise InvalidTokenError("Invalid token")

        return claims


def get_token_from_request() -> str | None:
    """Extract JWT token from Authorization header.

    Returns:
        Token string or None if not present
    """
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None
