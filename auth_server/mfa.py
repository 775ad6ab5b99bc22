"""
Two-Factor Authentication (2FA) Module

Implements TOTP-based 2FA (RFC 6238) compatible with Google Authenticator,
Authy, and other TOTP apps.

Features:
- TOTP secret generation and QR code rendering for enrollment
- Code verification with clock-drift tolerance
- Enrollment lifecycle: disabled -> pending verification -> enabled

Note: The pending two-factor login token is handled in auth/outcome.py.
This module only handles secrets, codes and the per-account lifecycle.
"""

import binascii
import dataclasses
import logging
from io import BytesIO
from typing import Optional

import pyotp
import qrcode
from qrcode.exceptions import DataOverflowError

from core.errors import AlreadyEnabledError, BadCredentialsError, ProvisioningRenderError
from auth_server.auth.accounts import AccountRepository
from auth_server.auth.types import Account, EnrollmentResult, TwoFactorState

logger = logging.getLogger(__name__)


class SecretStore:
    """Generates TOTP secrets and renders them as provisioning QR codes."""

    def __init__(self, issuer_name: str = "Trak Library", digits: int = 6, interval: int = 30):
        self.issuer_name = issuer_name
        self.digits = digits
        self.interval = interval

    def generate_secret(self) -> str:
        """Return a new random base32 secret."""
        return pyotp.random_base32()

    def provisioning_uri(self, secret: str, account_label: str) -> str:
        """Build the otpauth:// URI (SHA-1) an authenticator app imports."""
        totp = pyotp.TOTP(secret, digits=self.digits, interval=self.interval)
        return totp.provisioning_uri(name=account_label, issuer_name=self.issuer_name)

    def render_provisioning_image(self, secret: str, account_label: str) -> bytes:
        """Render the provisioning URI as a PNG QR code.

        Args:
            secret: Base32 TOTP secret
            account_label: Label shown in the authenticator app (the username)

        Returns:
            PNG image bytes

        Raises:
            ProvisioningRenderError: If the image cannot be produced
        """
        if not secret or not account_label:
            raise ProvisioningRenderError("Cannot render a provisioning image without a secret and label")

        try:
            uri = self.provisioning_uri(secret, account_label)

            qr = qrcode.QRCode(version=None, box_size=10, border=4)
            qr.add_data(uri)
            qr.make(fit=True)
            img = qr.make_image(fill_color="black", back_color="white")

            buffer = BytesIO()
            img.save(buffer, format="PNG")
        except (DataOverflowError, ValueError, TypeError, OSError) as e:
            raise ProvisioningRenderError("Unable to render the two-factor QR code") from e

        return buffer.getvalue()

    @staticmethod
    def format_manual_key(secret: str) -> str:
        """Format secret for manual entry, in groups of 4 characters."""
        secret = secret.rstrip("=")
        return " ".join(secret[i:i + 4] for i in range(0, len(secret), 4))


class CodeVerifier:
    """Validates one-time codes against a shared secret."""

    def __init__(self, digits: int = 6, interval: int = 30, valid_window: int = 1):
        self.digits = digits
        self.interval = interval
        self.valid_window = valid_window

    def is_valid_code(self, secret: Optional[str], submitted_code) -> bool:
        """Check a code within +/- valid_window time steps of now."""
        if not secret or not isinstance(submitted_code, str):
            return False

        code = submitted_code.strip()
        if len(code) != self.digits or not code.isdigit():
            return False

        totp = pyotp.TOTP(secret, digits=self.digits, interval=self.interval)
        try:
            return totp.verify(code, valid_window=self.valid_window)
        except (binascii.Error, ValueError):
            # Not a base32 secret
            return False


class TwoFactorAuthenticationCoordinator:
    """Manages the two-factor lifecycle of an account.

    States: DISABLED (no secret) -> PENDING_VERIFICATION (secret, not
    confirmed) -> ENABLED (secret, confirmed). disable() returns any state to
    DISABLED. Every operation is a single load/modify/save; a concurrent
    change to the same account surfaces as ConcurrentModificationError.
    """

    def __init__(self, accounts: AccountRepository, secret_store: SecretStore, code_verifier: CodeVerifier):
        self.accounts = accounts
        self.secret_store = secret_store
        self.code_verifier = code_verifier

    def status(self, account_id: int) -> TwoFactorState:
        return self.accounts.find_by_id(account_id).two_factor_state

    def begin_enrollment(self, account_id: int) -> EnrollmentResult:
        """Generate a new secret and its provisioning QR code.

        The secret is persisted only once the image has rendered, so a render
        failure leaves the account untouched.

        Raises:
            NotFoundError: Unknown account
            AlreadyEnabledError: 2FA must be disabled before re-provisioning
            ProvisioningRenderError: The QR code could not be rendered
        """
        account = self.accounts.find_by_id(account_id)

        if account.using_two_factor_authentication:
            raise AlreadyEnabledError("Two-factor authentication is already enabled for this user")

        secret = self.secret_store.generate_secret()
        qr_image = self.secret_store.render_provisioning_image(secret, account.username)

        self.accounts.save(dataclasses.replace(
            account,
            two_factor_secret=secret,
            using_two_factor_authentication=False,
        ))
        logger.info(f"Two-factor enrollment started for user {account_id}")

        return EnrollmentResult(
            account_id=account.id,
            qr_image=qr_image,
            manual_key=self.secret_store.format_manual_key(secret),
        )

    def confirm_enrollment(self, account_id: int, submitted_code: str) -> Account:
        """Enable 2FA once the user proves their authenticator produces valid codes.

        Already-enabled accounts are returned unchanged without checking the code.

        Raises:
            NotFoundError: Unknown account
            BadCredentialsError: The code is wrong or no enrollment is pending
        """
        account = self.accounts.find_by_id(account_id)

        if account.using_two_factor_authentication:
            return account

        if not self.code_verifier.is_valid_code(account.two_factor_secret, submitted_code):
            logger.info(f"Two-factor confirmation failed for user {account_id}")
            raise BadCredentialsError("Invalid 2FA code")

        stored = self.accounts.save(dataclasses.replace(account, using_two_factor_authentication=True))
        logger.info(f"Two-factor authentication enabled for user {account_id}")
        return stored

    def disable(self, account_id: int) -> Account:
        """Clear the secret and the flag. Safe to call on an already-disabled account."""
        account = self.accounts.find_by_id(account_id)

        stored = self.accounts.save(dataclasses.replace(
            account,
            two_factor_secret=None,
            using_two_factor_authentication=False,
        ))
        logger.info(f"Two-factor authentication disabled for user {account_id}")
        return stored
