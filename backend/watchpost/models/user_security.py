"""
User Security Models
====================

Per-user security state and identity lookup.

Security Controls:
- failed_login_attempts: incremented atomically in SQL, never in Python
- locked_until: lockout expiry, cleared on unlock or expiry
- mfa_secret: Fernet ciphertext, never the raw TOTP secret
- backup codes: Argon2 hashes only, ``used`` is monotonic
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from watchpost.db.base import Base


class Profile(Base):
    """Identity directory entry used to resolve an email to a user id."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, email={self.email})>"


class UserSecurity(Base):
    """Lockout and MFA state for one user."""

    __tablename__ = "user_security"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # ==========================
    # Lockout Protection
    # ==========================
    failed_login_attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        server_default="0",
        nullable=False,
    )

    locked_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ==========================
    # Multi-Factor Authentication
    # ==========================
    mfa_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default="0",
        nullable=False,
    )

    mfa_secret: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    password_changed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ==========================
    # Timestamps
    # ==========================
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<UserSecurity(user_id={self.user_id}, "
            f"failed_login_attempts={self.failed_login_attempts}, mfa_enabled={self.mfa_enabled})>"
        )


class MFABackupCode(Base):
    """One single-use backup code, stored as an Argon2 hash."""

    __tablename__ = "mfa_backup_codes"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("user_security.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    used: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default="0",
        nullable=False,
    )

    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
