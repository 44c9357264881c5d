"""
Bearer Token Utilities
======================

Issues and validates the JWTs that protect the admin and monitoring API.

Tokens carry:
- sub: the caller's user id
- roles: list of role names
- iss / aud: pinned to the configured issuer and audience
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from typing import Any, Dict, List, Optional, Sequence

from jose import JWTError, jwt

from watchpost.core.config import Settings, get_settings
from watchpost.core.exceptions import TokenInvalidError


@dataclass(frozen=True)
class Principal:
    """Authenticated caller extracted from a bearer token."""

    subject: str
    roles: List[str] = field(default_factory=list)
    email: Optional[str] = None

    def has_any_role(self, roles: Sequence[str]) -> bool:
        return any(role in self.roles for role in roles)


def create_access_token(
    subject: str,
    roles: Optional[Sequence[str]] = None,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
    settings: Optional[Settings] = None,
) -> str:
    """
    Create a signed access token.

    Args:
        subject: User id placed in the ``sub`` claim
        roles: Role names granted to the caller
        email: Optional email claim
        expires_delta: Lifetime override
        settings: Settings override

    Returns:
        Encoded JWT string
    """
    settings = settings or get_settings()
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    claims: Dict[str, Any] = {
        "sub": subject,
        "roles": list(roles or []),
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
        "iss": settings.ISSUER,
        "aud": settings.AUDIENCE,
    }
    if email:
        claims["email"] = email

    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> Principal:
    """
    Validate a token and return the caller it identifies.

    Raises:
        TokenInvalidError: If the signature, expiry, issuer or audience is wrong
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.AUDIENCE,
            issuer=settings.ISSUER,
        )
    except JWTError as e:
        raise TokenInvalidError(reason=str(e)) from e

    subject = payload.get("sub")
    if not subject:
        raise TokenInvalidError(reason="Token has no subject")

    roles = payload.get("roles") or []
    if not isinstance(roles, list):
        raise TokenInvalidError(reason="Malformed roles claim")

    return Principal(subject=str(subject), roles=[str(r) for r in roles], email=payload.get("email"))
