"""Tests for TOTP secrets, code verification and the two-factor lifecycle."""

import dataclasses
import time
from unittest.mock import patch

import pyotp
import pytest

from auth_server.auth import TwoFactorState
from auth_server.mfa import CodeVerifier, SecretStore
from core.errors import (
    AlreadyEnabledError,
    BadCredentialsError,
    ConcurrentModificationError,
    NotFoundError,
    ProvisioningRenderError,
)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
SECRET = "JBSWY3DPEHPK3PXP"


# =============================================================================
# SecretStore
# =============================================================================

class TestSecretStore:
    def test_generate_secret_is_base32(self, secret_store):
        secret = secret_store.generate_secret()
        assert len(secret) >= 16
        assert set(secret) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZ234567")

    def test_generate_secret_is_random(self, secret_store):
        assert secret_store.generate_secret() != secret_store.generate_secret()

    def test_provisioning_uri(self, secret_store):
        uri = secret_store.provisioning_uri(SECRET, "alice")

        assert uri.startswith("otpauth://totp/")
        assert "alice" in uri
        assert f"secret={SECRET}" in uri
        assert "issuer=Trak%20Library" in uri

    def test_render_provisioning_image_is_png(self, secret_store):
        image = secret_store.render_provisioning_image(secret_store.generate_secret(), "alice")
        assert image.startswith(PNG_SIGNATURE)

    @pytest.mark.parametrize("secret, label", [("", "alice"), (SECRET, "")])
    def test_render_without_inputs_raises(self, secret_store, secret, label):
        with pytest.raises(ProvisioningRenderError):
            secret_store.render_provisioning_image(secret, label)

    def test_render_failure_is_wrapped(self, secret_store):
        with patch("auth_server.mfa.qrcode.QRCode", side_effect=ValueError("boom")):
            with pytest.raises(ProvisioningRenderError) as exc_info:
                secret_store.render_provisioning_image(SECRET, "alice")
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_format_manual_key(self):
        assert SecretStore.format_manual_key(SECRET) == "JBSW Y3DP EHPK 3PXP"


# =============================================================================
# CodeVerifier
# =============================================================================

class TestCodeVerifier:
    def test_current_code_valid(self, code_verifier):
        assert code_verifier.is_valid_code(SECRET, pyotp.TOTP(SECRET).now()) is True

    def test_previous_step_accepted(self, code_verifier):
        code = pyotp.TOTP(SECRET).at(time.time() - 30)
        assert code_verifier.is_valid_code(SECRET, code) is True

    def test_distant_step_rejected(self, code_verifier):
        code = pyotp.TOTP(SECRET).at(time.time() - 300)
        assert code_verifier.is_valid_code(SECRET, code) is False

    def test_surrounding_whitespace_ignored(self, code_verifier):
        assert code_verifier.is_valid_code(SECRET, f" {pyotp.TOTP(SECRET).now()} ") is True

    def test_code_for_other_secret_rejected(self, code_verifier):
        other = pyotp.random_base32()
        assert code_verifier.is_valid_code(SECRET, pyotp.TOTP(other).now()) is False

    @pytest.mark.parametrize("code", ["", "12345", "1234567", "abcdef", None, 123456])
    def test_malformed_code_rejected(self, code_verifier, code):
        assert code_verifier.is_valid_code(SECRET, code) is False

    @pytest.mark.parametrize("secret", [None, ""])
    def test_missing_secret_rejected(self, code_verifier, secret):
        assert code_verifier.is_valid_code(secret, "123456") is False

    @pytest.mark.parametrize("secret", ["not-base32!!", "JBSWY3DPEHPK3PX1"])
    def test_non_base32_secret_rejected(self, code_verifier, secret):
        assert code_verifier.is_valid_code(secret, "123456") is False

    def test_zero_window_rejects_previous_step(self):
        verifier = CodeVerifier(valid_window=0)
        code = pyotp.TOTP(SECRET).at(time.time() - 30)
        assert verifier.is_valid_code(SECRET, code) is False


# =============================================================================
# TwoFactorAuthenticationCoordinator
# =============================================================================

class TestBeginEnrollment:
    def test_persists_secret_without_enabling(self, coordinator, accounts, make_account):
        account = make_account()

        result = coordinator.begin_enrollment(account.id)

        stored = accounts.find_by_id(account.id)
        assert stored.two_factor_secret
        assert stored.using_two_factor_authentication is False
        assert stored.two_factor_state is TwoFactorState.PENDING_VERIFICATION
        assert result.account_id == account.id
        assert result.qr_image.startswith(PNG_SIGNATURE)
        assert result.manual_key.replace(" ", "") == stored.two_factor_secret

    def test_qr_data_uri(self, coordinator, make_account):
        result = coordinator.begin_enrollment(make_account().id)
        assert result.qr_data_uri().startswith("data:image/png;base64,")

    def test_restart_replaces_pending_secret(self, coordinator, accounts, make_account):
        account = make_account()
        coordinator.begin_enrollment(account.id)
        first = accounts.find_by_id(account.id).two_factor_secret

        coordinator.begin_enrollment(account.id)

        assert accounts.find_by_id(account.id).two_factor_secret != first

    def test_already_enabled_raises(self, coordinator, accounts, make_account):
        account = make_account()
        coordinator.begin_enrollment(account.id)
        secret = accounts.find_by_id(account.id).two_factor_secret
        coordinator.confirm_enrollment(account.id, pyotp.TOTP(secret).now())

        with pytest.raises(AlreadyEnabledError):
            coordinator.begin_enrollment(account.id)

        assert accounts.find_by_id(account.id).two_factor_secret == secret

    def test_render_failure_leaves_account_unsaved(self, coordinator, secret_store, accounts, make_account):
        account = make_account()

        with patch.object(secret_store, "render_provisioning_image",
                          side_effect=ProvisioningRenderError("render failed")):
            with patch.object(accounts, "save", wraps=accounts.save) as save:
                with pytest.raises(ProvisioningRenderError):
                    coordinator.begin_enrollment(account.id)

        save.assert_not_called()
        assert accounts.find_by_id(account.id).two_factor_secret is None

    def test_unknown_account_raises(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.begin_enrollment(999)


class TestConfirmEnrollment:
    def test_valid_code_enables(self, coordinator, accounts, make_account):
        account = make_account()
        coordinator.begin_enrollment(account.id)
        secret = accounts.find_by_id(account.id).two_factor_secret

        enabled = coordinator.confirm_enrollment(account.id, pyotp.TOTP(secret).now())

        assert enabled.using_two_factor_authentication is True
        assert enabled.two_factor_secret == secret
        assert accounts.find_by_id(account.id).two_factor_state is TwoFactorState.ENABLED

    def test_invalid_code_raises_and_keeps_pending(self, coordinator, accounts, make_account):
        account = make_account()
        coordinator.begin_enrollment(account.id)

        with pytest.raises(BadCredentialsError):
            coordinator.confirm_enrollment(account.id, "000000")

        assert accounts.find_by_id(account.id).two_factor_state is TwoFactorState.PENDING_VERIFICATION

    def test_without_pending_secret_raises(self, coordinator, make_account):
        account = make_account()
        with pytest.raises(BadCredentialsError):
            coordinator.confirm_enrollment(account.id, "123456")

    def test_already_enabled_skips_verification(self, coordinator, code_verifier, accounts, make_account):
        account = make_account()
        coordinator.begin_enrollment(account.id)
        secret = accounts.find_by_id(account.id).two_factor_secret
        enabled = coordinator.confirm_enrollment(account.id, pyotp.TOTP(secret).now())

        with patch.object(code_verifier, "is_valid_code", wraps=code_verifier.is_valid_code) as verify:
            with patch.object(accounts, "save", wraps=accounts.save) as save:
                result = coordinator.confirm_enrollment(account.id, "not-a-code")

        verify.assert_not_called()
        save.assert_not_called()
        assert result == enabled


class TestDisable:
    def test_disable_clears_secret_and_flag(self, coordinator, accounts, make_account):
        account = make_account()
        coordinator.begin_enrollment(account.id)
        secret = accounts.find_by_id(account.id).two_factor_secret
        coordinator.confirm_enrollment(account.id, pyotp.TOTP(secret).now())

        disabled = coordinator.disable(account.id)

        assert disabled.two_factor_secret is None
        assert disabled.using_two_factor_authentication is False
        assert coordinator.status(account.id) is TwoFactorState.DISABLED

    def test_disable_pending_enrollment(self, coordinator, make_account):
        account = make_account()
        coordinator.begin_enrollment(account.id)

        coordinator.disable(account.id)

        assert coordinator.status(account.id) is TwoFactorState.DISABLED

    def test_disable_is_idempotent(self, coordinator, make_account):
        account = make_account()

        first = coordinator.disable(account.id)
        second = coordinator.disable(account.id)

        assert first.two_factor_secret is None and second.two_factor_secret is None
        assert second.using_two_factor_authentication is False

    def test_re_enrollment_after_disable(self, coordinator, make_account):
        account = make_account()
        coordinator.begin_enrollment(account.id)
        coordinator.disable(account.id)

        result = coordinator.begin_enrollment(account.id)

        assert result.account_id == account.id
        assert coordinator.status(account.id) is TwoFactorState.PENDING_VERIFICATION


class TestConcurrentChanges:
    def test_stale_save_raises(self, coordinator, accounts, make_account):
        account = make_account()
        stale = accounts.find_by_id(account.id)

        coordinator.begin_enrollment(account.id)

        with pytest.raises(ConcurrentModificationError):
            accounts.save(dataclasses.replace(stale, verified=True))
