"""
Token issuance after a successful authentication step.

Two-step login flow:
1. Password verified -> handle_success(): full tokens, or a pending
   two-factor token if the account uses 2FA
2. Pending token + TOTP code -> handle_two_factor(): full tokens

A refresh token can later be exchanged for a new access token through
handle_refresh().
"""
import logging
from typing import TYPE_CHECKING, Optional

from core.errors import AuthenticationServiceError, BadCredentialsError
from .accounts import AccountRepository
from .config import ROLE_PREFIX
from .tokens import TokenIssuer
from .types import Account, SecurityRole, TokenKind, TokenPayload

if TYPE_CHECKING:
    from auth_server.mfa import CodeVerifier

logger = logging.getLogger(__name__)


class AuthenticationOutcomeHandler:
    """Decides which tokens an authenticated account receives."""

    def __init__(
        self,
        token_issuer: TokenIssuer,
        accounts: Optional[AccountRepository] = None,
        code_verifier: Optional["CodeVerifier"] = None,
    ):
        self.token_issuer = token_issuer
        self.accounts = accounts
        self.code_verifier = code_verifier

    def handle_success(self, account: Account) -> TokenPayload:
        """Issue tokens for an account whose password has just been verified.

        Raises:
            AuthenticationServiceError: If no recognisable role authority is present
        """
        self._require_role(account)

        if account.using_two_factor_authentication:
            token = self.token_issuer.create_two_factor_authentication_token(account)
            logger.info(f"User {account.id} passed password check, awaiting 2FA code")
            return TokenPayload(
                access_token=token,
                expires_in=self._seconds(TokenKind.TWO_FACTOR),
                two_factor_required=True,
            )

        return self._issue_tokens(account)

    def handle_two_factor(self, pending_token: str, submitted_code: str) -> TokenPayload:
        """Complete a two-factor login.

        Raises:
            InvalidTokenError: If pending_token is not a valid pending two-factor token
            NotFoundError: If the account no longer exists
            BadCredentialsError: If the code is wrong or 2FA is no longer enabled
        """
        claims = self.token_issuer.decode_token(pending_token, expected_kind=TokenKind.TWO_FACTOR)
        account = self.accounts.find_by_id(claims.user_id)

        if not account.using_two_factor_authentication or not self.code_verifier.is_valid_code(
            account.two_factor_secret, submitted_code
        ):
            logger.info(f"Two-factor login failed for user {account.id}")
            raise BadCredentialsError("Invalid 2FA code")

        self._require_role(account)
        logger.info(f"Two-factor login completed for user {account.id}")
        return self._issue_tokens(account)

    def handle_refresh(self, refresh_token: str) -> TokenPayload:
        """Exchange a refresh token for a new access token.

        The account is reloaded so role changes since login take effect.
        """
        claims = self.token_issuer.decode_token(refresh_token, expected_kind=TokenKind.REFRESH)
        account = self.accounts.find_by_id(claims.user_id)
        self._require_role(account)

        access_token = self.token_issuer.create_access_token(account)
        logger.info(f"Access token refreshed for user {account.id}")
        return TokenPayload(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._seconds(TokenKind.ACCESS),
            scope=self._scope(account),
        )

    def _issue_tokens(self, account: Account) -> TokenPayload:
        access_token = self.token_issuer.create_access_token(account)
        refresh_token = self.token_issuer.create_refresh_token(account)
        return TokenPayload(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._seconds(TokenKind.ACCESS),
            scope=self._scope(account),
        )

    @staticmethod
    def _require_role(account: Account) -> SecurityRole:
        role = SecurityRole.primary_of(account.authorities)
        if role is None:
            raise AuthenticationServiceError("Cannot authenticate a user with no role authority present")
        return role

    @staticmethod
    def _scope(account: Account) -> str:
        return ";".join(a for a in account.authorities or () if not a.startswith(ROLE_PREFIX))

    def _seconds(self, kind: TokenKind) -> int:
        return int(self.token_issuer.ttl_for(kind).total_seconds())
