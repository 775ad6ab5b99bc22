"""
Central configuration using Pydantic BaseSettings.

Validates all env vars at startup (fail-fast). The JWT signing key and the
two-factor encryption key refuse to be empty in production but may be left
unset in TESTING mode.

Usage:
    from config.settings import get_settings

    settings = get_settings()
    print(settings.auth.access_token_ttl)

Lazy initialization: get_settings() creates the singleton on first call.
Tests can reset via get_settings.cache_clear().
"""

import os
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet
from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


def _is_testing() -> bool:
    """Check if running in test mode."""
    return (
        os.getenv("TESTING", "").lower() in ("true", "1")
        or os.getenv("FLASK_ENV", "") == "testing"
    )


# =============================================================================
# Nested Settings Groups
# =============================================================================


class AuthSettings(BaseSettings):
    """JWT signing and token lifetime configuration."""

    model_config = {"env_prefix": "", "extra": "ignore"}

    jwt_secret: SecretStr = SecretStr("")
    jwt_algorithm: str = "HS512"

    access_token_expiration_minutes: int = 15
    refresh_token_expiration_days: int = 7
    # Only bridges the password check and the code check
    two_factor_token_expiration_minutes: int = 5

    token_issuer: str = "Trak Library"
    token_audience: str = "https://api.traklibrary.com"

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.access_token_expiration_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.refresh_token_expiration_days)

    @property
    def two_factor_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.two_factor_token_expiration_minutes)


class TwoFactorSettings(BaseSettings):
    """TOTP provisioning and verification parameters."""

    model_config = {"env_prefix": "TWO_FACTOR_", "extra": "ignore"}

    # Fernet key for secrets at rest; generate with Fernet.generate_key()
    encryption_key: SecretStr = SecretStr("")
    issuer_name: str = "Trak Library"
    digits: int = 6
    interval: int = 30
    valid_window: int = 1


class DatabaseSettings(BaseSettings):
    """Account storage configuration."""

    model_config = {"env_prefix": "", "extra": "ignore"}

    accounts_db_path: Optional[str] = None  # None keeps accounts in memory


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration."""

    model_config = {"env_prefix": "RATE_LIMIT_", "extra": "ignore"}

    default: str = "500 per minute"
    auth: str = "10 per minute"
    storage: str = "memory://"
    enabled: bool = True


# =============================================================================
# Root Settings
# =============================================================================


class AppSettings(BaseSettings):
    """Root application settings composing all sub-settings."""

    model_config = {"env_prefix": "", "extra": "ignore", "env_file": ".env", "env_file_encoding": "utf-8"}

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: str = ""

    # Nested groups (initialized separately to support env_prefix)
    auth: AuthSettings = None  # type: ignore[assignment]
    two_factor: TwoFactorSettings = None  # type: ignore[assignment]
    database: DatabaseSettings = None  # type: ignore[assignment]
    rate_limit: RateLimitSettings = None  # type: ignore[assignment]

    @model_validator(mode="before")
    @classmethod
    def _init_nested(cls, values):
        """Initialize nested settings from environment."""
        if values.get("auth") is None:
            values["auth"] = AuthSettings()
        if values.get("two_factor") is None:
            values["two_factor"] = TwoFactorSettings()
        if values.get("database") is None:
            values["database"] = DatabaseSettings()
        if values.get("rate_limit") is None:
            values["rate_limit"] = RateLimitSettings()
        return values

    @model_validator(mode="after")
    def _validate_required_secrets(self):
        """Require JWT_SECRET and TWO_FACTOR_ENCRYPTION_KEY in production; bypass only in TESTING mode."""
        if _is_testing():
            return self

        if not self.auth.jwt_secret.get_secret_value():
            raise ValueError(
                "JWT_SECRET env var is required. "
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(64))\""
            )

        encryption_key = self.two_factor.encryption_key.get_secret_value()
        if not encryption_key:
            raise ValueError(
                "TWO_FACTOR_ENCRYPTION_KEY env var is required. "
                "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
            )
        try:
            Fernet(encryption_key)
        except ValueError:
            raise ValueError("TWO_FACTOR_ENCRYPTION_KEY must be a valid Fernet key")

        return self


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """
    Get the application settings singleton.

    Lazy-initialized on first call. Validates all env vars (fail-fast).
    Tests can reset via: get_settings.cache_clear()
    """
    return AppSettings()
