"""
Authentication Dependencies Module
==================================

FastAPI dependencies for bearer-token authentication, role checks and
access to the service container.

Usage:
    @router.get("/protected")
    async def protected_route(principal: Principal = Depends(require_admin)):
        return {"subject": principal.subject}
"""

from typing import Optional, Sequence

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from watchpost.core.exceptions import AuthenticationError, RoleNotAuthorizedError
from watchpost.core.logging import bind_principal, get_logger
from watchpost.core.security import Principal, decode_access_token
from watchpost.services.container import ServiceContainer

logger = get_logger(__name__)


# =====================================
# Bearer Scheme
# =====================================

bearer_scheme = HTTPBearer(
    auto_error=False,
    description="JWT issued for the Watchpost API",
)


# =====================================
# Container Access
# =====================================

def get_container(request: Request) -> ServiceContainer:
    """Service container built at startup."""
    return request.app.state.container


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# =====================================
# Current Principal
# =====================================

async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """
    Validate the bearer token and return the caller.

    Raises:
        AuthenticationError: If no token was sent
        TokenInvalidError: If the token does not validate
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Not authenticated")

    principal = decode_access_token(credentials.credentials, settings=request.app.state.container.settings)
    request.state.user_id = principal.subject
    bind_principal(principal.subject)
    return principal


# =====================================
# Role Requirements
# =====================================

async def require_admin(
    request: Request,
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Dependency that requires one of the configured admin roles."""
    admin_roles = request.app.state.container.settings.ADMIN_ROLES
    if not principal.has_any_role(admin_roles):
        logger.warning("admin_access_denied", subject=principal.subject, path=request.url.path)
        raise RoleNotAuthorizedError(list(admin_roles))
    return principal


async def require_service_or_admin(
    request: Request,
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Dependency for callers that report login outcomes: the auth backend or an admin."""
    settings = request.app.state.container.settings
    allowed = [*settings.SERVICE_ROLES, *settings.ADMIN_ROLES]
    if not principal.has_any_role(allowed):
        logger.warning("service_access_denied", subject=principal.subject, path=request.url.path)
        raise RoleNotAuthorizedError(allowed)
    return principal


def ensure_self_or_admin(principal: Principal, user_id: str, admin_roles: Sequence[str]) -> None:
    """Raise unless the caller is acting on their own account or is an admin."""
    if principal.subject != user_id and not principal.has_any_role(admin_roles):
        logger.warning("cross_account_access_denied", subject=principal.subject, target_user_id=user_id)
        raise RoleNotAuthorizedError(list(admin_roles))
