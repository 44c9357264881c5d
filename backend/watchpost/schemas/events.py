"""
Security Event Schemas
======================

Input accepted by the event logger and the persisted view returned
by the query surface.
"""

from datetime import datetime, UTC
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from watchpost.core.enums import EventType, Severity

Scalar = Union[str, int, float, bool, None]


class SecurityEventInput(BaseModel):
    """A security event as reported by a collaborator."""

    model_config = ConfigDict(frozen=True)

    event_type: EventType
    user_id: Optional[str] = None
    email: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Scalar] = Field(default_factory=dict)
    severity: Severity = Severity.LOW
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def subject(self) -> str:
        """Who or what the event is about, used for alert messages and de-duplication."""
        return self.email or self.user_id or self.ip_address or "system"


class SecurityEventRecord(BaseModel):
    """A persisted audit-log row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    event_type: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    severity: Severity = Severity.LOW
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SecurityEventRecord":
        data = row.get("event_data") or {}
        return cls(
            id=row["id"],
            event_type=row["event_type"],
            user_id=row.get("user_id"),
            email=data.get("email"),
            ip_address=row.get("ip_address"),
            user_agent=row.get("user_agent"),
            severity=data.get("severity", Severity.LOW.value),
            metadata=data.get("metadata") or {},
            timestamp=data.get("timestamp"),
            created_at=row["created_at"],
        )
