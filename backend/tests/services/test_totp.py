"""
TOTP Unit Tests
===============

Tests for HOTP/TOTP generation, verification windows and the
provisioning URI.
"""

import pytest

from watchpost.services import totp


pytestmark = pytest.mark.unit

# RFC 6238 Appendix B SHA1 seed "12345678901234567890" in Base32
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


class TestCodeGeneration:
    """Tests for hotp and totp_at."""

    def test_rfc6238_vector(self):
        """Test the first RFC 6238 reference value."""
        assert totp.totp_at(RFC_SECRET, 59, digits=8) == "94287082"
        assert totp.totp_at(RFC_SECRET, 59) == "287082"

    def test_rfc4226_vectors(self):
        """Test the RFC 4226 HOTP reference values."""
        assert totp.hotp(RFC_SECRET, 0) == "755224"
        assert totp.hotp(RFC_SECRET, 1) == "287082"

    def test_secret_is_32_base32_chars(self):
        """Test that generated secrets are 160-bit Base32."""
        secret = totp.generate_secret()

        assert len(secret) == 32
        assert set(secret) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZ234567")

    def test_secrets_are_unique(self):
        assert totp.generate_secret() != totp.generate_secret()


class TestVerification:
    """Tests for verify_totp."""

    def test_current_step_verifies(self):
        now = 1_800_000_000
        code = totp.totp_at(RFC_SECRET, now)

        assert totp.verify_totp(RFC_SECRET, code, for_time=now) is True

    def test_adjacent_step_within_window(self):
        """Test that a code from the previous step is accepted with window=1."""
        now = 1_800_000_000
        previous = totp.totp_at(RFC_SECRET, now - 30)

        assert totp.verify_totp(RFC_SECRET, previous, for_time=now, window=1) is True
        assert totp.verify_totp(RFC_SECRET, previous, for_time=now, window=0) is False

    def test_code_outside_window_rejected(self):
        now = 1_800_000_000
        stale = totp.totp_at(RFC_SECRET, now - 120)

        assert totp.verify_totp(RFC_SECRET, stale, for_time=now, window=1) is False

    @pytest.mark.parametrize("code", ["", "12345", "1234567", "abcdef", "١٢٣٤٥٦", "²²²²²²", None])
    def test_malformed_codes_rejected(self, code):
        """Test that malformed codes never verify."""
        assert totp.verify_totp(RFC_SECRET, code, for_time=1_800_000_000) is False

    def test_spaces_are_ignored(self):
        now = 1_800_000_000
        code = totp.totp_at(RFC_SECRET, now)

        assert totp.verify_totp(RFC_SECRET, f"{code[:3]} {code[3:]}", for_time=now) is True


class TestProvisioningUri:
    """Tests for build_provisioning_uri."""

    def test_uri_contains_issuer_account_and_secret(self):
        uri = totp.build_provisioning_uri(RFC_SECRET, account_name="user@example.com", issuer="Watchpost")

        assert uri.startswith("otpauth://totp/Watchpost:user@example.com?")
        assert f"secret={RFC_SECRET}" in uri
        assert "issuer=Watchpost" in uri
        assert "digits=6" in uri
        assert "period=30" in uri
