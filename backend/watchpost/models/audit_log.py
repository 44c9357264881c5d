"""
Auth Audit Log Model
====================

Append-only record of every security event.

The denormalized ``event_data`` column holds the email, severity,
free-form metadata and the caller-supplied timestamp. ``created_at`` is
the store timestamp and is authoritative for windowed queries.

Database Indexes:
- event_type + created_at (threshold and metrics windows)
- user_id (per-user history)
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from watchpost.db.base import Base


class AuthAuditLog(Base):
    """A single persisted security event."""

    __tablename__ = "auth_audit_log"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    event_data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_auth_audit_log_type_created", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuthAuditLog(id={self.id}, event_type={self.event_type})>"
