"""
Authentication Security Routes
==============================

Endpoints used by the authentication backend and end users.

Features:
- Login outcome tracking with account lockout
- Account lock status
- Password policy checks and password-change bookkeeping
- TOTP multi-factor setup, activation and verification
- Single-use backup codes

Security:
- Login tracking and password-change records require a service or admin token
- MFA endpoints act on the caller's own account unless the caller is an admin
- MFA failures return a generic message
"""

from fastapi import APIRouter, Depends, Request, status

from watchpost.core.dependencies.auth import (
    ensure_self_or_admin,
    get_client_ip,
    get_container,
    get_current_principal,
    require_service_or_admin,
)
from watchpost.core.logging import get_logger
from watchpost.core.security import Principal
from watchpost.schemas import (
    AccountStatus,
    ErrorResponse,
    LoginAttemptRequest,
    LoginAttemptResult,
    MFACodeRequest,
    MFAResult,
    MFASetupResult,
    MFAStatus,
    MFAUserRequest,
    PasswordChangeRecorded,
    PasswordChangeRequest,
    PasswordCheckRequest,
    PasswordValidationResult,
)
from watchpost.services.container import ServiceContainer

logger = get_logger(__name__)


# =====================================
# Router Setup
# =====================================

router = APIRouter(
    prefix="/auth",
    tags=["Authentication Security"],
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Insufficient permissions"},
    },
)


# =====================================
# Login Attempt Tracking
# =====================================

@router.post(
    "/login-attempts",
    response_model=LoginAttemptResult,
    summary="Track Login Attempt",
    description="Record a login outcome and apply the lockout policy.",
)
async def track_login_attempt(
    request: Request,
    attempt: LoginAttemptRequest,
    principal: Principal = Depends(require_service_or_admin),
    container: ServiceContainer = Depends(get_container),
) -> LoginAttemptResult:
    return await container.login_tracker.track_login_attempt(
        email=attempt.email,
        success=attempt.success,
        ip_address=attempt.ip_address or get_client_ip(request),
        user_agent=attempt.user_agent or request.headers.get("user-agent"),
    )


@router.get(
    "/accounts/{email}/status",
    response_model=AccountStatus,
    summary="Account Lock Status",
)
async def get_account_status(
    email: str,
    principal: Principal = Depends(require_service_or_admin),
    container: ServiceContainer = Depends(get_container),
) -> AccountStatus:
    return await container.login_tracker.get_account_status(email)


# =====================================
# Password Policy
# =====================================

@router.post(
    "/password/check",
    response_model=PasswordValidationResult,
    summary="Check Password Against Policy",
    description="Report unmet composition rules and a 0-100 strength score. The password is not stored.",
)
async def check_password(
    body: PasswordCheckRequest,
    principal: Principal = Depends(get_current_principal),
    container: ServiceContainer = Depends(get_container),
) -> PasswordValidationResult:
    return container.password_policy.validate_password(body.password)


@router.post(
    "/password/changes",
    response_model=PasswordChangeRecorded,
    status_code=status.HTTP_201_CREATED,
    summary="Record Password Change",
)
async def record_password_change(
    request: Request,
    body: PasswordChangeRequest,
    principal: Principal = Depends(require_service_or_admin),
    container: ServiceContainer = Depends(get_container),
) -> PasswordChangeRecorded:
    return await container.password_policy.record_password_change(
        body.user_id,
        body.email,
        ip_address=body.ip_address or get_client_ip(request),
    )


# =====================================
# Multi-Factor Authentication
# =====================================

@router.post(
    "/mfa/setup",
    response_model=MFASetupResult,
    summary="Begin MFA Setup",
    description=(
        "Generate a TOTP secret and backup codes. MFA stays disabled until "
        "a code from the authenticator app is confirmed via /auth/mfa/activate."
    ),
)
async def setup_mfa(
    body: MFAUserRequest,
    principal: Principal = Depends(get_current_principal),
    container: ServiceContainer = Depends(get_container),
) -> MFASetupResult:
    ensure_self_or_admin(principal, body.user_id, container.settings.ADMIN_ROLES)
    return await container.mfa.setup_mfa(body.user_id, body.email)


@router.post("/mfa/activate", response_model=MFAResult, summary="Activate MFA")
async def activate_mfa(
    body: MFACodeRequest,
    principal: Principal = Depends(get_current_principal),
    container: ServiceContainer = Depends(get_container),
) -> MFAResult:
    ensure_self_or_admin(principal, body.user_id, container.settings.ADMIN_ROLES)
    return await container.mfa.verify_and_activate_mfa(body.user_id, body.email, body.code)


@router.post("/mfa/verify", response_model=MFAResult, summary="Verify MFA Code")
async def verify_mfa(
    body: MFACodeRequest,
    principal: Principal = Depends(get_current_principal),
    container: ServiceContainer = Depends(get_container),
) -> MFAResult:
    ensure_self_or_admin(principal, body.user_id, container.settings.ADMIN_ROLES)
    return await container.mfa.verify_mfa_code(body.user_id, body.email, body.code)


@router.post("/mfa/backup-codes/verify", response_model=MFAResult, summary="Use Backup Code")
async def verify_backup_code(
    body: MFACodeRequest,
    principal: Principal = Depends(get_current_principal),
    container: ServiceContainer = Depends(get_container),
) -> MFAResult:
    ensure_self_or_admin(principal, body.user_id, container.settings.ADMIN_ROLES)
    return await container.mfa.verify_backup_code(body.user_id, body.email, body.code)


@router.post("/mfa/backup-codes/regenerate", response_model=MFASetupResult, summary="Regenerate Backup Codes")
async def regenerate_backup_codes(
    body: MFAUserRequest,
    principal: Principal = Depends(get_current_principal),
    container: ServiceContainer = Depends(get_container),
) -> MFASetupResult:
    ensure_self_or_admin(principal, body.user_id, container.settings.ADMIN_ROLES)
    return await container.mfa.regenerate_backup_codes(body.user_id, body.email)


@router.post("/mfa/disable", response_model=MFAResult, summary="Disable MFA")
async def disable_mfa(
    body: MFAUserRequest,
    principal: Principal = Depends(get_current_principal),
    container: ServiceContainer = Depends(get_container),
) -> MFAResult:
    ensure_self_or_admin(principal, body.user_id, container.settings.ADMIN_ROLES)
    return await container.mfa.disable_mfa(body.user_id, body.email)


@router.get("/mfa/{user_id}/status", response_model=MFAStatus, summary="MFA Status")
async def get_mfa_status(
    user_id: str,
    principal: Principal = Depends(get_current_principal),
    container: ServiceContainer = Depends(get_container),
) -> MFAStatus:
    ensure_self_or_admin(principal, user_id, container.settings.ADMIN_ROLES)
    return MFAStatus(
        user_id=user_id,
        mfa_enabled=await container.mfa.is_mfa_enabled(user_id),
        remaining_backup_codes=await container.mfa.count_unused_backup_codes(user_id),
    )
