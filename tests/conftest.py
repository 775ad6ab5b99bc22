"""Shared pytest fixtures for the Trak auth tests."""
import os
from datetime import timedelta

import pytest

# ---------------------------------------------------------------------------
# Deterministic test environment - set BEFORE any auth_server module imports.
# HS512 wants a key of at least 64 bytes.
# ---------------------------------------------------------------------------
TEST_JWT_SECRET = "test-jwt-secret-for-pytest-0123456789abcdef0123456789abcdef0123456789"

os.environ.setdefault('TESTING', 'true')
os.environ.setdefault('JWT_SECRET', TEST_JWT_SECRET)
os.environ.setdefault('RATE_LIMIT_ENABLED', 'false')
os.environ.setdefault('LOG_FORMAT', 'text')

from auth_server.auth import (  # noqa: E402
    AuthenticationOutcomeHandler,
    InMemoryAccountRepository,
    TokenIssuer,
    register_account,
)
from auth_server.mfa import CodeVerifier, SecretStore, TwoFactorAuthenticationCoordinator  # noqa: E402
from auth_server.services import AuthServices  # noqa: E402
from config.settings import get_settings  # noqa: E402

TEST_PASSWORD = "correct-horse-battery-staple"


@pytest.fixture(autouse=True)
def _reset_settings():
    """Each test starts from a fresh settings singleton."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def accounts():
    return InMemoryAccountRepository()


@pytest.fixture
def jwt_secret():
    return TEST_JWT_SECRET


@pytest.fixture
def token_issuer(jwt_secret):
    return TokenIssuer(
        secret_key=jwt_secret,
        access_token_ttl=timedelta(minutes=15),
        refresh_token_ttl=timedelta(days=7),
        two_factor_token_ttl=timedelta(minutes=5),
    )


@pytest.fixture
def secret_store():
    return SecretStore()


@pytest.fixture
def code_verifier():
    return CodeVerifier()


@pytest.fixture
def coordinator(accounts, secret_store, code_verifier):
    return TwoFactorAuthenticationCoordinator(accounts, secret_store, code_verifier)


@pytest.fixture
def outcome_handler(token_issuer, accounts, code_verifier):
    return AuthenticationOutcomeHandler(token_issuer, accounts, code_verifier)


@pytest.fixture
def password():
    return TEST_PASSWORD


@pytest.fixture
def make_account(accounts):
    """Factory registering an account with TEST_PASSWORD."""
    def _make(username="alice", authorities=("ROLE_USER",), **kwargs):
        return register_account(accounts, username, TEST_PASSWORD, authorities=authorities, **kwargs)
    return _make


# =============================================================================
# Flask Fixtures
# =============================================================================

@pytest.fixture
def services(accounts, token_issuer, outcome_handler, coordinator):
    return AuthServices(
        accounts=accounts,
        token_issuer=token_issuer,
        outcome_handler=outcome_handler,
        two_factor=coordinator,
    )


@pytest.fixture
def app(services):
    from auth_server.app import create_app
    return create_app(config={'TESTING': True, 'RATELIMIT_ENABLED': False}, services=services)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_header():
    """Build an Authorization header for a bearer token."""
    def _header(token):
        return {"Authorization": f"Bearer {token}"}
    return _header
