"""
Service wiring.

Builds the authentication collaborators from settings once per app. Routes
reach them through current_app.extensions["trak_auth"].
"""

import logging
from dataclasses import dataclass

from auth_server.auth import (
    AccountRepository,
    AuthenticationOutcomeHandler,
    InMemoryAccountRepository,
    SqliteAccountRepository,
    TokenIssuer,
    build_secret_cipher,
    init_database,
)
from auth_server.mfa import CodeVerifier, SecretStore, TwoFactorAuthenticationCoordinator

logger = logging.getLogger(__name__)


@dataclass
class AuthServices:
    """Collaborators shared by the auth routes."""
    accounts: AccountRepository
    token_issuer: TokenIssuer
    outcome_handler: AuthenticationOutcomeHandler
    two_factor: TwoFactorAuthenticationCoordinator


def build_services(settings, accounts: AccountRepository = None) -> AuthServices:
    """Create all auth services from AppSettings.

    Args:
        settings: config.settings.AppSettings
        accounts: Optional repository override (tests); otherwise SQLite when
            ACCOUNTS_DB_PATH is set, else in-memory
    """
    if accounts is None:
        db_path = settings.database.accounts_db_path
        if db_path:
            init_database(db_path)
            cipher = build_secret_cipher(
                settings.two_factor,
                jwt_secret=settings.auth.jwt_secret.get_secret_value(),
            )
            accounts = SqliteAccountRepository(db_path, cipher)
        else:
            logger.warning("ACCOUNTS_DB_PATH not set, accounts are kept in memory only")
            accounts = InMemoryAccountRepository()

    two_factor = settings.two_factor
    code_verifier = CodeVerifier(
        digits=two_factor.digits,
        interval=two_factor.interval,
        valid_window=two_factor.valid_window,
    )
    secret_store = SecretStore(
        issuer_name=two_factor.issuer_name,
        digits=two_factor.digits,
        interval=two_factor.interval,
    )
    token_issuer = TokenIssuer.from_settings(settings.auth)

    return AuthServices(
        accounts=accounts,
        token_issuer=token_issuer,
        outcome_handler=AuthenticationOutcomeHandler(token_issuer, accounts, code_verifier),
        two_factor=TwoFactorAuthenticationCoordinator(accounts, secret_store, code_verifier),
    )
