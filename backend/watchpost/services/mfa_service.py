"""
MFA Service
===========

Setup, verification and teardown of TOTP second factors and one-time
backup codes.

Security Features:
- Secrets encrypted at rest with Fernet
- Backup codes stored as Argon2 hashes and shown to the user once
- Backup-code consumption is a conditional update (claim), so a code
  validates at most once even under concurrent requests
- Every verification failure returns the same generic message
"""

import base64
import hashlib
import secrets
from datetime import datetime, UTC
from typing import Any, Callable, Dict, List, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from cryptography.fernet import Fernet, InvalidToken

from watchpost.core.config import Settings, get_settings
from watchpost.core.enums import EventType, MFAErrorCode, Severity
from watchpost.core.exceptions import StoreError
from watchpost.core.logging import get_logger
from watchpost.db.store import EventStore
from watchpost.schemas.auth import MFAResult, MFASetupResult
from watchpost.schemas.events import SecurityEventInput
from watchpost.services import totp
from watchpost.services.event_logger import SecurityEventLogger

logger = get_logger(__name__)

USER_SECURITY_TABLE = "user_security"
BACKUP_CODES_TABLE = "mfa_backup_codes"

# No 0/O or 1/I
BACKUP_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

INVALID_CODE_MESSAGE = "Invalid verification code"
UNAVAILABLE_MESSAGE = "MFA service temporarily unavailable"


def derive_fernet_key(secret_key: str) -> bytes:
    """Derive a Fernet key from the application secret."""
    return base64.urlsafe_b64encode(hashlib.sha256(secret_key.encode("utf-8")).digest())


def normalise_backup_code(code: str) -> str:
    return "".join(ch for ch in (code or "").upper() if ch not in " -")


class MFAService:
    """TOTP second factor with hashed single-use backup codes."""

    def __init__(
        self,
        store: EventStore,
        event_logger: SecurityEventLogger,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.event_logger = event_logger
        self.settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._hasher = PasswordHasher(
            time_cost=self.settings.ARGON2_TIME_COST,
            memory_cost=self.settings.ARGON2_MEMORY_COST,
            parallelism=self.settings.ARGON2_PARALLELISM,
        )
        key = self.settings.MFA_ENCRYPTION_KEY
        self._fernet = Fernet(key.encode("ascii") if key else derive_fernet_key(self.settings.SECRET_KEY))

    # =====================================
    # Helpers
    # =====================================

    def generate_backup_codes(self) -> List[str]:
        return [
            "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(self.settings.BACKUP_CODE_LENGTH))
            for _ in range(self.settings.BACKUP_CODES_COUNT)
        ]

    def _encrypt(self, secret: str) -> str:
        return self._fernet.encrypt(secret.encode("ascii")).decode("ascii")

    def _decrypt(self, token: str) -> str:
        return self._fernet.decrypt(token.encode("ascii")).decode("ascii")

    def _verify_totp(self, secret: str, code: str) -> bool:
        return totp.verify_totp(
            secret,
            code,
            for_time=self._clock().timestamp(),
            period=self.settings.TOTP_PERIOD,
            digits=self.settings.TOTP_DIGITS,
            window=self.settings.TOTP_VALID_WINDOW,
        )

    def _stored_secret(self, state: Optional[Dict[str, Any]]) -> Optional[str]:
        """Decrypt the stored secret; an undecryptable secret counts as unusable."""
        if not state or not state.get("mfa_secret"):
            return None
        try:
            return self._decrypt(state["mfa_secret"])
        except InvalidToken:
            logger.error("mfa_secret_decrypt_failed", user_id=state.get("user_id"))
            return None

    async def _replace_backup_codes(self, user_id: str) -> List[str]:
        codes = self.generate_backup_codes()
        await self.store.delete(BACKUP_CODES_TABLE, {"user_id": user_id})
        for code in codes:
            await self.store.insert(BACKUP_CODES_TABLE, {
                "user_id": user_id,
                "code_hash": self._hasher.hash(code),
                "used": False,
            })
        return codes

    async def _log(
        self,
        event_type: EventType,
        severity: Severity,
        user_id: str,
        email: str,
        **metadata: Any,
    ) -> None:
        await self.event_logger.log_event(SecurityEventInput(
            event_type=event_type,
            user_id=user_id,
            email=email,
            severity=severity,
            metadata=metadata,
        ))

    @staticmethod
    def _unavailable(error: Exception) -> MFAResult:
        logger.error("mfa_store_failed", error=str(error))
        return MFAResult(success=False, error=MFAErrorCode.SERVICE_UNAVAILABLE, message=UNAVAILABLE_MESSAGE)

    # =====================================
    # Setup & Activation
    # =====================================

    async def setup_mfa(self, user_id: str, email: str) -> MFASetupResult:
        """
        Generate a secret and backup codes. MFA stays inactive until the
        first code is verified.

        Returns:
            MFASetupResult carrying the secret, provisioning URI and codes
        """
        try:
            state = await self.store.get(USER_SECURITY_TABLE, {"user_id": user_id})
            if state and state.get("mfa_enabled"):
                return MFASetupResult(
                    success=False,
                    error=MFAErrorCode.MFA_ALREADY_ENABLED,
                    message="MFA is already enabled for this account",
                )

            secret = totp.generate_secret()
            await self.store.upsert(
                USER_SECURITY_TABLE,
                {"user_id": user_id, "mfa_secret": self._encrypt(secret), "mfa_enabled": False},
                keys=["user_id"],
            )
            codes = await self._replace_backup_codes(user_id)
        except StoreError as e:
            return MFASetupResult(**self._unavailable(e).model_dump())

        uri = totp.build_provisioning_uri(
            secret,
            account_name=email,
            issuer=self.settings.MFA_ISSUER,
            period=self.settings.TOTP_PERIOD,
            digits=self.settings.TOTP_DIGITS,
        )
        await self._log(EventType.MFA_SETUP_INITIATED, Severity.LOW, user_id, email)
        logger.info("mfa_setup_initiated", user_id=user_id)

        return MFASetupResult(
            success=True,
            message="Scan the QR code with your authenticator app and enter a code to finish setup",
            secret=secret,
            provisioning_uri=uri,
            qr_code_payload=uri,
            backup_codes=codes,
            remaining_backup_codes=len(codes),
        )

    async def verify_and_activate_mfa(self, user_id: str, email: str, code: str) -> MFAResult:
        """Activate MFA once the user proves the authenticator is set up."""
        try:
            state = await self.store.get(USER_SECURITY_TABLE, {"user_id": user_id})
            if not state or not state.get("mfa_secret"):
                return MFAResult(success=False, error=MFAErrorCode.MFA_NOT_SETUP, message="MFA has not been set up")
            if state.get("mfa_enabled"):
                return MFAResult(
                    success=False,
                    error=MFAErrorCode.MFA_ALREADY_ENABLED,
                    message="MFA is already enabled for this account",
                )

            secret = self._stored_secret(state)
            if secret is None or not self._verify_totp(secret, code):
                await self._log(EventType.MFA_FAILURE, Severity.HIGH, user_id, email, stage="activation")
                return MFAResult(success=False, error=MFAErrorCode.INVALID_CODE, message=INVALID_CODE_MESSAGE)

            await self.store.update(USER_SECURITY_TABLE, {"user_id": user_id}, {"mfa_enabled": True})
        except StoreError as e:
            return self._unavailable(e)

        await self._log(EventType.MFA_ENABLED, Severity.MEDIUM, user_id, email)
        logger.info("mfa_enabled", user_id=user_id)
        return MFAResult(success=True, message="MFA enabled")

    # =====================================
    # Verification
    # =====================================

    async def verify_mfa_code(self, user_id: str, email: str, code: str) -> MFAResult:
        """Login-time TOTP check."""
        try:
            state = await self.store.get(USER_SECURITY_TABLE, {"user_id": user_id})
        except StoreError as e:
            return self._unavailable(e)

        if not state or not state.get("mfa_enabled"):
            return MFAResult(success=False, error=MFAErrorCode.MFA_NOT_ENABLED, message="MFA is not enabled")

        secret = self._stored_secret(state)
        if secret is None or not self._verify_totp(secret, code):
            await self._log(EventType.MFA_FAILURE, Severity.HIGH, user_id, email, method="totp")
            return MFAResult(success=False, error=MFAErrorCode.INVALID_CODE, message=INVALID_CODE_MESSAGE)

        await self._log(EventType.MFA_SUCCESS, Severity.LOW, user_id, email, method="totp")
        return MFAResult(success=True, message="Verification successful")

    async def verify_backup_code(self, user_id: str, email: str, code: str) -> MFAResult:
        """
        Consume a backup code.

        The matching row is claimed with ``UPDATE ... WHERE used = false``;
        only the request whose update touches the row succeeds.
        """
        candidate = normalise_backup_code(code)
        try:
            rows = await self.store.query(BACKUP_CODES_TABLE, {"user_id": user_id, "used": False})
            match = next((row for row in rows if self._hash_matches(row["code_hash"], candidate)), None)

            claimed = 0
            if match is not None:
                claimed = await self.store.update(
                    BACKUP_CODES_TABLE,
                    {"id": match["id"], "used": False},
                    {"used": True, "used_at": self._clock()},
                )
        except StoreError as e:
            return self._unavailable(e)

        if claimed != 1:
            await self._log(EventType.MFA_FAILURE, Severity.HIGH, user_id, email, method="backup_code")
            return MFAResult(success=False, error=MFAErrorCode.INVALID_CODE, message=INVALID_CODE_MESSAGE)

        # The code is spent; the remaining count is informational only
        remaining: Optional[int] = None
        try:
            remaining = await self.store.count(BACKUP_CODES_TABLE, {"user_id": user_id, "used": False})
        except StoreError as e:
            logger.warning("mfa_backup_code_count_failed", user_id=user_id, error=str(e))

        await self._log(EventType.MFA_BACKUP_USED, Severity.MEDIUM, user_id, email, remaining_codes=remaining)
        if remaining == 0:
            logger.warning("mfa_backup_codes_exhausted", user_id=user_id)
        return MFAResult(success=True, message="Backup code accepted", remaining_backup_codes=remaining)

    def _hash_matches(self, code_hash: str, candidate: str) -> bool:
        if not candidate:
            return False
        try:
            return self._hasher.verify(code_hash, candidate)
        except (VerificationError, InvalidHashError):
            return False

    # =====================================
    # Teardown & Maintenance
    # =====================================

    async def disable_mfa(self, user_id: str, email: str) -> MFAResult:
        """Clear the secret and flag and delete every backup code."""
        try:
            state = await self.store.get(USER_SECURITY_TABLE, {"user_id": user_id})
            if not state or not (state.get("mfa_enabled") or state.get("mfa_secret")):
                return MFAResult(success=False, error=MFAErrorCode.MFA_NOT_ENABLED, message="MFA is not enabled")

            await self.store.update(
                USER_SECURITY_TABLE,
                {"user_id": user_id},
                {"mfa_enabled": False, "mfa_secret": None},
            )
            await self.store.delete(BACKUP_CODES_TABLE, {"user_id": user_id})
        except StoreError as e:
            return self._unavailable(e)

        await self._log(EventType.MFA_DISABLED, Severity.MEDIUM, user_id, email)
        logger.info("mfa_disabled", user_id=user_id)
        return MFAResult(success=True, message="MFA disabled")

    async def regenerate_backup_codes(self, user_id: str, email: str) -> MFASetupResult:
        """Invalidate the current backup codes and issue a fresh set."""
        try:
            state = await self.store.get(USER_SECURITY_TABLE, {"user_id": user_id})
            if not state or not state.get("mfa_secret"):
                return MFASetupResult(
                    success=False,
                    error=MFAErrorCode.MFA_NOT_SETUP,
                    message="MFA has not been set up",
                )
            codes = await self._replace_backup_codes(user_id)
        except StoreError as e:
            return MFASetupResult(**self._unavailable(e).model_dump())

        await self._log(EventType.MFA_BACKUP_REGENERATED, Severity.MEDIUM, user_id, email)
        return MFASetupResult(
            success=True,
            message="Backup codes regenerated",
            backup_codes=codes,
            remaining_backup_codes=len(codes),
        )

    async def is_mfa_enabled(self, user_id: str) -> bool:
        state = await self.store.get(USER_SECURITY_TABLE, {"user_id": user_id})
        return bool(state and state.get("mfa_enabled"))

    async def count_unused_backup_codes(self, user_id: str) -> int:
        return await self.store.count(BACKUP_CODES_TABLE, {"user_id": user_id, "used": False})
