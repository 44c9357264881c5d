"""
Authentication Schemas Module
=============================

Pydantic models for login-attempt tracking and MFA requests/results.

Expected business failures are carried in the result models
(``success=False`` plus an error code) rather than raised.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from watchpost.core.enums import MFAErrorCode, PasswordStrength


# ==========================
# Error Schemas
# ==========================

class ErrorResponse(BaseModel):
    """Error body produced by the exception handlers."""

    message: str
    error_code: Optional[str] = None
    details: dict = Field(default_factory=dict)


# ==========================
# Login Attempt Schemas
# ==========================

class LoginAttemptRequest(BaseModel):
    """A login outcome reported by the authentication backend."""

    email: EmailStr
    success: bool
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "user@example.com",
                "success": False,
                "ip_address": "203.0.113.7",
            }
        }
    )


class LoginAttemptResult(BaseModel):
    """Outcome of tracking one login attempt."""

    success: bool
    locked: bool
    remaining_attempts: int = Field(..., ge=0)
    lockout_expiry: Optional[datetime] = None
    message: str


class AccountStatus(BaseModel):
    """Lockout state of one account."""

    locked: bool
    failed_attempts: int = 0
    lockout_expiry: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


# ==========================
# MFA Schemas
# ==========================

class MFAUserRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    email: EmailStr


class MFACodeRequest(MFAUserRequest):
    code: str = Field(..., min_length=1, max_length=32)


class MFAResult(BaseModel):
    """Outcome of an MFA verification or state change."""

    success: bool
    error: Optional[MFAErrorCode] = None
    message: str
    remaining_backup_codes: Optional[int] = None


class MFASetupResult(MFAResult):
    """Outcome of MFA setup or backup-code regeneration.

    Secrets and backup codes appear here exactly once.
    """

    secret: Optional[str] = None
    provisioning_uri: Optional[str] = None
    qr_code_payload: Optional[str] = None
    backup_codes: List[str] = Field(default_factory=list)


class MFAStatus(BaseModel):
    user_id: str
    mfa_enabled: bool
    remaining_backup_codes: int = 0


# ==========================
# Password Schemas
# ==========================

class PasswordCheckRequest(BaseModel):
    """A candidate password to check against the policy. Never stored or logged."""

    password: str = Field(..., min_length=1, max_length=256)


class PasswordValidationResult(BaseModel):
    """Policy verdict and strength score for a candidate password."""

    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    strength: PasswordStrength
    score: int = Field(..., ge=0, le=100)


class PasswordChangeRequest(BaseModel):
    """A completed password change reported by the authentication backend."""

    user_id: str = Field(..., min_length=1, max_length=64)
    email: EmailStr
    ip_address: Optional[str] = None


class PasswordChangeRecorded(BaseModel):
    user_id: str
    password_changed_at: datetime
