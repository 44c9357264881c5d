"""
Password Policy Service
=======================

Checks candidate passwords against the configured composition rules,
scores their strength, and records completed password changes.

The service only ever sees a password transiently; it is never stored,
returned or logged.
"""

import re
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Callable, List, Optional

from watchpost.core.config import Settings, get_settings
from watchpost.core.enums import PasswordStrength
from watchpost.core.logging import get_logger
from watchpost.db.store import EventStore
from watchpost.schemas.auth import PasswordChangeRecorded, PasswordValidationResult
from watchpost.services.event_logger import SecurityEventLogger

logger = get_logger(__name__)

USER_SECURITY_TABLE = "user_security"

SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")
REPEATED_CHARACTERS = re.compile(r"(.)\1{2,}")
COMMON_SEQUENCES = re.compile(r"123|abc|qwe|password", re.IGNORECASE)

COMMON_PASSWORDS = frozenset({
    "000000", "123456", "123456789", "654321", "abc123", "admin", "baseball",
    "buster", "charlie", "computer", "dragon", "football", "freedom", "hello",
    "hunter", "iloveyou", "letmein", "master", "monkey", "password",
    "password1", "password123", "princess", "qwerty", "qwerty123", "shadow",
    "starwars", "sunshine", "superman", "trustno1", "welcome", "whatever",
})

# (minimum score, band), highest first
STRENGTH_BANDS = (
    (90, PasswordStrength.VERY_STRONG),
    (80, PasswordStrength.STRONG),
    (60, PasswordStrength.MEDIUM),
    (40, PasswordStrength.WEAK),
)


@dataclass(frozen=True)
class PasswordPolicy:
    """Composition rules a new password must satisfy."""

    min_length: int = 8
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_special: bool = True
    reject_common: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordPolicy":
        return cls(
            min_length=settings.PASSWORD_MIN_LENGTH,
            require_uppercase=settings.PASSWORD_REQUIRE_UPPERCASE,
            require_lowercase=settings.PASSWORD_REQUIRE_LOWERCASE,
            require_digit=settings.PASSWORD_REQUIRE_DIGIT,
            require_special=settings.PASSWORD_REQUIRE_SPECIAL,
            reject_common=settings.PASSWORD_REJECT_COMMON,
        )


def is_common_password(password: str) -> bool:
    return password.lower() in COMMON_PASSWORDS


def calculate_strength(password: str) -> int:
    """
    Score a password from 0 to 100.

    Length and character variety add points; runs of one character and
    well-known sequences take them away.
    """
    has_lower = re.search(r"[a-z]", password) is not None
    has_upper = re.search(r"[A-Z]", password) is not None
    has_digit = re.search(r"\d", password) is not None
    has_special = SPECIAL_CHARACTERS.search(password) is not None

    score = min(len(password) * 4, 25)
    score += 10 if has_lower else 0
    score += 10 if has_upper else 0
    score += 10 if has_digit else 0
    score += 15 if has_special else 0

    if REPEATED_CHARACTERS.search(password):
        score -= 10
    if COMMON_SEQUENCES.search(password):
        score -= 20
    if len(password) < 8:
        score -= 15

    if len(password) >= 12:
        score += 10
    if len(password) >= 16:
        score += 15
    if has_lower and has_upper:
        score += 5
    if has_digit and has_special:
        score += 5

    return max(0, min(100, score))


def strength_for_score(score: int) -> PasswordStrength:
    for minimum, band in STRENGTH_BANDS:
        if score >= minimum:
            return band
    return PasswordStrength.VERY_WEAK


class PasswordPolicyService:
    """Password composition checks and password-change bookkeeping."""

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
        self.policy = PasswordPolicy.from_settings(self.settings)
        self._clock = clock or (lambda: datetime.now(UTC))

    def validate_password(self, password: str, policy: Optional[PasswordPolicy] = None) -> PasswordValidationResult:
        """
        Check a candidate password.

        Every unmet rule contributes one message; the strength score is
        reported whether or not the password is acceptable.
        """
        policy = policy or self.policy
        errors: List[str] = []

        if len(password) < policy.min_length:
            errors.append(f"Password must be at least {policy.min_length} characters long")
        if policy.require_uppercase and not re.search(r"[A-Z]", password):
            errors.append("Password must contain at least one uppercase letter")
        if policy.require_lowercase and not re.search(r"[a-z]", password):
            errors.append("Password must contain at least one lowercase letter")
        if policy.require_digit and not re.search(r"\d", password):
            errors.append("Password must contain at least one number")
        if policy.require_special and not SPECIAL_CHARACTERS.search(password):
            errors.append("Password must contain at least one special character")
        if policy.reject_common and is_common_password(password):
            errors.append("Password is too common")

        score = calculate_strength(password)
        return PasswordValidationResult(
            is_valid=not errors,
            errors=errors,
            strength=strength_for_score(score),
            score=score,
        )

    async def record_password_change(
        self,
        user_id: str,
        email: str,
        ip_address: Optional[str] = None,
    ) -> PasswordChangeRecorded:
        """
        Stamp ``password_changed_at`` and audit the change.

        Raises:
            StoreError: If the security state cannot be written
        """
        changed_at = self._clock()
        await self.store.upsert(
            USER_SECURITY_TABLE,
            {"user_id": user_id, "password_changed_at": changed_at},
            keys=["user_id"],
        )
        await self.event_logger.log_password_change(user_id, email, ip_address)
        logger.info("password_change_recorded", user_id=user_id)
        return PasswordChangeRecorded(user_id=user_id, password_changed_at=changed_at)
