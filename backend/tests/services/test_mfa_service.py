"""
MFA Service Tests
=================

Tests for MFAService covering:
- Setup and activation
- Login-time TOTP verification
- Single-use backup codes
- Disable and backup-code regeneration
- Secrets encrypted at rest
"""

import asyncio

import pytest

from watchpost.core.enums import MFAErrorCode
from watchpost.core.exceptions import StoreError
from watchpost.services import totp
from watchpost.services.container import ServiceContainer
from watchpost.services.mfa_service import INVALID_CODE_MESSAGE, MFAService, normalise_backup_code

from conftest import FakeClock


pytestmark = pytest.mark.unit

USER_ID = "user-1"
EMAIL = "user@example.com"


@pytest.fixture
def mfa(container: ServiceContainer) -> MFAService:
    return container.mfa


def current_code(secret: str, clock: FakeClock) -> str:
    return totp.totp_at(secret, clock.now.timestamp())


async def enable_mfa(mfa: MFAService, clock: FakeClock):
    setup = await mfa.setup_mfa(USER_ID, EMAIL)
    result = await mfa.verify_and_activate_mfa(USER_ID, EMAIL, current_code(setup.secret, clock))
    assert result.success is True
    return setup


# =====================================
# Setup & Activation
# =====================================

class TestSetup:
    """Tests for setup_mfa and verify_and_activate_mfa."""

    async def test_setup_returns_secret_uri_and_codes(self, mfa: MFAService, settings):
        # Act
        result = await mfa.setup_mfa(USER_ID, EMAIL)

        # Assert
        assert result.success is True
        assert len(result.secret) == 32
        assert result.provisioning_uri.startswith("otpauth://totp/")
        assert result.qr_code_payload == result.provisioning_uri
        assert len(result.backup_codes) == settings.BACKUP_CODES_COUNT
        assert all(len(code) == settings.BACKUP_CODE_LENGTH for code in result.backup_codes)
        assert result.remaining_backup_codes == settings.BACKUP_CODES_COUNT

    async def test_setup_leaves_mfa_inactive(self, mfa: MFAService):
        await mfa.setup_mfa(USER_ID, EMAIL)

        assert await mfa.is_mfa_enabled(USER_ID) is False

    async def test_secret_and_codes_are_not_stored_in_plaintext(self, mfa: MFAService, container):
        # Act
        result = await mfa.setup_mfa(USER_ID, EMAIL)

        # Assert
        state = await container.store.get("user_security", {"user_id": USER_ID})
        assert state["mfa_secret"] != result.secret
        assert result.secret not in state["mfa_secret"]
        codes = await container.store.query("mfa_backup_codes", {"user_id": USER_ID})
        stored = {row["code_hash"] for row in codes}
        assert not stored & set(result.backup_codes)
        assert all(h.startswith("$argon2") for h in stored)

    async def test_activation_with_valid_code(self, mfa: MFAService, clock: FakeClock):
        # Arrange
        setup = await mfa.setup_mfa(USER_ID, EMAIL)

        # Act
        result = await mfa.verify_and_activate_mfa(USER_ID, EMAIL, current_code(setup.secret, clock))

        # Assert
        assert result.success is True
        assert result.message == "MFA enabled"
        assert await mfa.is_mfa_enabled(USER_ID) is True

    async def test_second_activation_reports_already_enabled(self, mfa: MFAService, clock: FakeClock):
        setup = await enable_mfa(mfa, clock)

        result = await mfa.verify_and_activate_mfa(USER_ID, EMAIL, current_code(setup.secret, clock))

        assert result.success is False
        assert result.error == MFAErrorCode.MFA_ALREADY_ENABLED

    async def test_activation_with_wrong_code(self, mfa: MFAService, clock: FakeClock):
        setup = await mfa.setup_mfa(USER_ID, EMAIL)
        wrong = totp.totp_at(setup.secret, clock.now.timestamp() + 3600)

        result = await mfa.verify_and_activate_mfa(USER_ID, EMAIL, wrong)

        assert result.success is False
        assert result.error == MFAErrorCode.INVALID_CODE
        assert result.message == INVALID_CODE_MESSAGE
        assert await mfa.is_mfa_enabled(USER_ID) is False

    async def test_activation_without_setup(self, mfa: MFAService):
        result = await mfa.verify_and_activate_mfa(USER_ID, EMAIL, "123456")

        assert result.error == MFAErrorCode.MFA_NOT_SETUP

    async def test_setup_when_enabled_is_rejected(self, mfa: MFAService, clock: FakeClock):
        await enable_mfa(mfa, clock)

        result = await mfa.setup_mfa(USER_ID, EMAIL)

        assert result.success is False
        assert result.error == MFAErrorCode.MFA_ALREADY_ENABLED
        assert result.secret is None
        assert result.backup_codes == []


# =====================================
# TOTP Verification
# =====================================

class TestVerifyCode:
    """Tests for verify_mfa_code."""

    async def test_valid_code(self, mfa: MFAService, clock: FakeClock):
        setup = await enable_mfa(mfa, clock)
        clock.advance(seconds=90)

        result = await mfa.verify_mfa_code(USER_ID, EMAIL, current_code(setup.secret, clock))

        assert result.success is True
        assert result.message == "Verification successful"

    async def test_invalid_code_is_audited(self, mfa: MFAService, clock: FakeClock, container):
        await enable_mfa(mfa, clock)

        result = await mfa.verify_mfa_code(USER_ID, EMAIL, "not-a-code")

        assert result.error == MFAErrorCode.INVALID_CODE
        assert await container.store.count("auth_audit_log", {"event_type": "mfa_failure"}) == 1

    async def test_verification_when_not_enabled(self, mfa: MFAService):
        result = await mfa.verify_mfa_code(USER_ID, EMAIL, "123456")

        assert result.error == MFAErrorCode.MFA_NOT_ENABLED

    @pytest.mark.parametrize("code", ["١٢٣٤٥٦", "²²²²²²"])
    async def test_non_ascii_digits_are_rejected(self, mfa: MFAService, clock: FakeClock, code: str):
        """Test that Unicode digits fail like any other wrong code."""
        await enable_mfa(mfa, clock)

        result = await mfa.verify_mfa_code(USER_ID, EMAIL, code)

        assert result.success is False
        assert result.error == MFAErrorCode.INVALID_CODE

    async def test_activation_rejects_non_ascii_digits(self, mfa: MFAService):
        await mfa.setup_mfa(USER_ID, EMAIL)

        result = await mfa.verify_and_activate_mfa(USER_ID, EMAIL, "١٢٣٤٥٦")

        assert result.error == MFAErrorCode.INVALID_CODE
        assert await mfa.is_mfa_enabled(USER_ID) is False

    async def test_repeated_failures_raise_critical_alert(self, mfa: MFAService, clock: FakeClock, container):
        """Test that three MFA failures trip the bypass-attempt rule."""
        await enable_mfa(mfa, clock)

        for _ in range(3):
            await mfa.verify_mfa_code(USER_ID, EMAIL, "000000x")

        alerts = await container.alerting.get_alerts()
        assert [a.rule_id for a in alerts] == ["mfa-bypass-attempts"]
        assert alerts[0].severity.value == "critical"


# =====================================
# Backup Codes
# =====================================

class TestBackupCodes:
    """Tests for verify_backup_code and regenerate_backup_codes."""

    async def test_backup_code_works_once(self, mfa: MFAService, clock: FakeClock, settings):
        # Arrange
        setup = await enable_mfa(mfa, clock)
        code = setup.backup_codes[0]

        # Act
        first = await mfa.verify_backup_code(USER_ID, EMAIL, code)
        second = await mfa.verify_backup_code(USER_ID, EMAIL, code)

        # Assert
        assert first.success is True
        assert first.remaining_backup_codes == settings.BACKUP_CODES_COUNT - 1
        assert second.success is False
        assert second.error == MFAErrorCode.INVALID_CODE

    async def test_backup_code_is_normalised(self, mfa: MFAService, clock: FakeClock):
        setup = await enable_mfa(mfa, clock)
        code = setup.backup_codes[1]
        typed = f"{code[:4].lower()}-{code[4:]}"

        result = await mfa.verify_backup_code(USER_ID, EMAIL, typed)

        assert result.success is True

    async def test_unknown_backup_code(self, mfa: MFAService, clock: FakeClock):
        await enable_mfa(mfa, clock)

        result = await mfa.verify_backup_code(USER_ID, EMAIL, "ZZZZZZZZ")

        assert result.success is False
        assert result.message == INVALID_CODE_MESSAGE

    async def test_spent_code_succeeds_when_count_fails(
        self, mfa: MFAService, clock: FakeClock, container: ServiceContainer, monkeypatch
    ):
        """Test that a claimed code is reported as accepted even if the follow-up count fails."""
        # Arrange
        setup = await enable_mfa(mfa, clock)
        store = container.store
        original_count = store.count

        async def failing_count(table, filters=None):
            if table == "mfa_backup_codes":
                raise StoreError("down")
            return await original_count(table, filters)

        monkeypatch.setattr(store, "count", failing_count)

        # Act
        result = await mfa.verify_backup_code(USER_ID, EMAIL, setup.backup_codes[0])

        # Assert
        assert result.success is True
        assert result.remaining_backup_codes is None
        monkeypatch.undo()
        assert await mfa.count_unused_backup_codes(USER_ID) == len(setup.backup_codes) - 1

    async def test_regenerate_invalidates_old_codes(self, mfa: MFAService, clock: FakeClock, settings):
        # Arrange
        setup = await enable_mfa(mfa, clock)

        # Act
        regenerated = await mfa.regenerate_backup_codes(USER_ID, EMAIL)
        old = await mfa.verify_backup_code(USER_ID, EMAIL, setup.backup_codes[0])
        new = await mfa.verify_backup_code(USER_ID, EMAIL, regenerated.backup_codes[0])

        # Assert
        assert regenerated.success is True
        assert len(regenerated.backup_codes) == settings.BACKUP_CODES_COUNT
        assert old.success is False
        assert new.success is True

    async def test_regenerate_without_setup(self, mfa: MFAService):
        result = await mfa.regenerate_backup_codes(USER_ID, EMAIL)

        assert result.error == MFAErrorCode.MFA_NOT_SETUP

    def test_normalise_backup_code(self):
        assert normalise_backup_code("ab cd-efgh") == "ABCDEFGH"
        assert normalise_backup_code(None) == ""


# =====================================
# Disable
# =====================================

class TestDisable:
    """Tests for disable_mfa."""

    async def test_disable_clears_state(self, mfa: MFAService, clock: FakeClock):
        # Arrange
        await enable_mfa(mfa, clock)

        # Act
        result = await mfa.disable_mfa(USER_ID, EMAIL)

        # Assert
        assert result.success is True
        assert await mfa.is_mfa_enabled(USER_ID) is False
        assert await mfa.count_unused_backup_codes(USER_ID) == 0

    async def test_disable_when_not_enabled(self, mfa: MFAService):
        result = await mfa.disable_mfa(USER_ID, EMAIL)

        assert result.error == MFAErrorCode.MFA_NOT_ENABLED

    async def test_setup_again_after_disable(self, mfa: MFAService, clock: FakeClock):
        await enable_mfa(mfa, clock)
        await mfa.disable_mfa(USER_ID, EMAIL)

        result = await mfa.setup_mfa(USER_ID, EMAIL)

        assert result.success is True


# =====================================
# Concurrency
# =====================================

class TestConcurrentBackupCodes:
    """Tests against a file-backed store whose sessions really overlap."""

    async def test_code_is_claimed_exactly_once(self, file_container: ServiceContainer, clock: FakeClock):
        """Test that racing requests with one backup code yield a single success."""
        # Arrange
        mfa = file_container.mfa
        setup = await enable_mfa(mfa, clock)
        code = setup.backup_codes[0]

        # Act
        results = await asyncio.gather(*(mfa.verify_backup_code(USER_ID, EMAIL, code) for _ in range(5)))

        # Assert
        assert sum(result.success for result in results) == 1
        assert {result.error for result in results if not result.success} == {MFAErrorCode.INVALID_CODE}
        assert await mfa.count_unused_backup_codes(USER_ID) == len(setup.backup_codes) - 1
