"""
Login Attempt Tracker
=====================

Per-account lockout state machine.

States:
    OPEN    failed attempts below the maximum
    LOCKED  ``locked_until`` in the future; requests are rejected and not charged

Failed attempts are counted with a single SQL increment so concurrent
failures for the same account cannot under-count. Emails that do not
resolve to an account are never locked.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Any, Callable, Dict, Optional

from watchpost.core.config import Settings, get_settings
from watchpost.core.enums import EventType, Severity
from watchpost.core.exceptions import StoreError
from watchpost.core.logging import get_logger
from watchpost.db.store import EventStore
from watchpost.schemas.auth import AccountStatus, LoginAttemptResult
from watchpost.schemas.events import SecurityEventInput
from watchpost.services.event_logger import SecurityEventLogger

logger = get_logger(__name__)

PROFILES_TABLE = "profiles"
USER_SECURITY_TABLE = "user_security"


@dataclass(frozen=True)
class LoginAttemptConfig:
    """Lockout policy."""

    max_attempts: int = 5
    lockout_duration_minutes: int = 15
    reset_after_success: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoginAttemptConfig":
        return cls(
            max_attempts=settings.MAX_LOGIN_ATTEMPTS,
            lockout_duration_minutes=settings.LOCKOUT_DURATION_MINUTES,
            reset_after_success=settings.RESET_AFTER_SUCCESS,
        )


class LoginAttemptTracker:
    """Tracks login outcomes and locks accounts after repeated failures."""

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
        self.default_config = LoginAttemptConfig.from_settings(self.settings)
        self._clock = clock or (lambda: datetime.now(UTC))

    # =====================================
    # Identity Resolution
    # =====================================

    async def resolve_user_id(self, email: str) -> Optional[str]:
        profile = await self.store.get(PROFILES_TABLE, {"email": email.strip().lower()})
        return profile["id"] if profile else None

    async def _get_state(self, user_id: str) -> Dict[str, Any]:
        # Insert-if-missing so every later write has a row to hit
        return await self.store.upsert(USER_SECURITY_TABLE, {"user_id": user_id}, keys=["user_id"])

    # =====================================
    # Tracking
    # =====================================

    async def track_login_attempt(
        self,
        email: str,
        success: bool,
        config: Optional[LoginAttemptConfig] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginAttemptResult:
        """
        Record a login outcome and apply the lockout policy.

        Args:
            email: Account email as typed by the user
            success: Whether the credentials were accepted
            config: Policy override
            ip_address: Client address for the audit log
            user_agent: Client user agent for the audit log

        Returns:
            LoginAttemptResult with a human-readable message
        """
        config = config or self.default_config
        email = email.strip().lower()

        try:
            user_id = await self.resolve_user_id(email)
            if user_id is None:
                return await self._track_unknown_identity(email, success, config, ip_address, user_agent)

            state = await self._get_state(user_id)
            now = self._clock()
            locked_until: Optional[datetime] = state.get("locked_until")

            if locked_until is not None and now < locked_until:
                await self.event_logger.log_login_failure(
                    email,
                    reason="account_locked",
                    user_id=user_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    metadata={"lockout_expiry": locked_until.isoformat()},
                )
                return LoginAttemptResult(
                    success=False,
                    locked=True,
                    remaining_attempts=0,
                    lockout_expiry=locked_until,
                    message=f"Account is locked. Try again after {locked_until.isoformat()}",
                )

            if locked_until is not None:
                await self.store.update(
                    USER_SECURITY_TABLE,
                    {"user_id": user_id},
                    {"failed_login_attempts": 0, "locked_until": None},
                )
                state["failed_login_attempts"] = 0
                logger.info("account_lockout_expired", user_id=user_id)

            if success:
                return await self._record_success(user_id, email, state, config, now, ip_address, user_agent)
            return await self._record_failure(user_id, email, config, now, ip_address, user_agent)

        except StoreError as e:
            logger.error("login_attempt_tracking_failed", email=email, error=str(e))
            return LoginAttemptResult(
                success=False,
                locked=False,
                remaining_attempts=0,
                message="Error tracking login attempt",
            )

    async def _track_unknown_identity(
        self,
        email: str,
        success: bool,
        config: LoginAttemptConfig,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> LoginAttemptResult:
        if success:
            await self.event_logger.log_login_success(None, email, ip_address, user_agent)
            return LoginAttemptResult(
                success=True,
                locked=False,
                remaining_attempts=config.max_attempts,
                message="Login successful",
            )

        await self.event_logger.log_login_failure(
            email,
            reason="unknown_account",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return LoginAttemptResult(
            success=False,
            locked=False,
            remaining_attempts=config.max_attempts,
            message=f"Login failed. {config.max_attempts} attempts remaining.",
        )

    async def _record_success(
        self,
        user_id: str,
        email: str,
        state: Dict[str, Any],
        config: LoginAttemptConfig,
        now: datetime,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> LoginAttemptResult:
        patch: Dict[str, Any] = {"last_login_at": now}
        failed_count = state.get("failed_login_attempts") or 0
        if config.reset_after_success:
            patch.update(failed_login_attempts=0, locked_until=None)
            failed_count = 0

        await self.store.update(USER_SECURITY_TABLE, {"user_id": user_id}, patch)
        await self.event_logger.log_login_success(user_id, email, ip_address, user_agent)

        return LoginAttemptResult(
            success=True,
            locked=False,
            remaining_attempts=max(0, config.max_attempts - failed_count),
            message="Login successful",
        )

    async def _record_failure(
        self,
        user_id: str,
        email: str,
        config: LoginAttemptConfig,
        now: datetime,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> LoginAttemptResult:
        failed_count = await self.store.increment(
            USER_SECURITY_TABLE,
            {"user_id": user_id},
            "failed_login_attempts",
        )
        if failed_count is None:
            raise StoreError("Security state row disappeared", details={"user_id": user_id})

        await self.event_logger.log_login_failure(
            email,
            reason="invalid_credentials",
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"attempt_count": failed_count},
        )

        if failed_count >= config.max_attempts:
            lockout_expiry = now + timedelta(minutes=config.lockout_duration_minutes)
            await self.store.update(
                USER_SECURITY_TABLE,
                {"user_id": user_id},
                {"locked_until": lockout_expiry},
            )
            await self.event_logger.log_account_locked(
                user_id,
                email,
                reason=f"{failed_count} failed login attempts",
                lockout_expiry=lockout_expiry,
                ip_address=ip_address,
            )
            logger.warning(
                "account_locked",
                user_id=user_id,
                failed_attempts=failed_count,
                lockout_expiry=lockout_expiry.isoformat(),
            )
            return LoginAttemptResult(
                success=False,
                locked=True,
                remaining_attempts=0,
                lockout_expiry=lockout_expiry,
                message=f"Too many failed attempts. Account locked for {config.lockout_duration_minutes} minutes.",
            )

        remaining = max(0, config.max_attempts - failed_count)
        return LoginAttemptResult(
            success=False,
            locked=False,
            remaining_attempts=remaining,
            message=f"Login failed. {remaining} attempts remaining.",
        )

    # =====================================
    # Admin Operations
    # =====================================

    async def unlock_account(self, email: str) -> bool:
        """
        Clear the lock and failed-attempt counter unconditionally.

        Returns:
            False when the email does not resolve to an account
        """
        email = email.strip().lower()
        user_id = await self.resolve_user_id(email)
        if user_id is None:
            return False

        await self._get_state(user_id)
        await self.store.update(
            USER_SECURITY_TABLE,
            {"user_id": user_id},
            {"failed_login_attempts": 0, "locked_until": None},
        )
        await self.event_logger.log_event(SecurityEventInput(
            event_type=EventType.ACCOUNT_UNLOCKED,
            user_id=user_id,
            email=email,
            severity=Severity.MEDIUM,
            metadata={"unlocked_by": "admin"},
        ))
        logger.info("account_unlocked", user_id=user_id)
        return True

    async def get_account_status(self, email: str) -> AccountStatus:
        """Current lockout state. Unknown emails report as open."""
        email = email.strip().lower()
        user_id = await self.resolve_user_id(email)
        if user_id is None:
            return AccountStatus(locked=False, failed_attempts=0)

        state = await self.store.get(USER_SECURITY_TABLE, {"user_id": user_id})
        if state is None:
            return AccountStatus(locked=False, failed_attempts=0)

        locked_until = state.get("locked_until")
        locked = locked_until is not None and self._clock() < locked_until
        return AccountStatus(
            locked=locked,
            failed_attempts=state.get("failed_login_attempts") or 0,
            lockout_expiry=locked_until if locked else None,
            last_login_at=state.get("last_login_at"),
        )
