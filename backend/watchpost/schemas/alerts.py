"""
Alerting Schemas
================

Pydantic models for alert rules, alerts and notification records.

Validation:
- threshold rules must carry a positive threshold
- rule time windows are at least one minute
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from watchpost.core.enums import (
    AlertCondition,
    AlertStatus,
    ChannelType,
    EventType,
    NotificationStatus,
    Severity,
)


# ==========================
# Alert Actions
# ==========================

class AlertAction(BaseModel):
    """One notification target attached to a rule."""

    type: ChannelType
    config: Dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True


# ==========================
# Alert Rules
# ==========================

class AlertRuleCreate(BaseModel):
    """Alert rule creation request."""

    id: Optional[str] = Field(default=None, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    event_type: EventType
    condition: AlertCondition
    threshold: Optional[int] = Field(default=None, ge=1)
    time_window_minutes: int = Field(..., ge=1)
    severity: Severity
    enabled: bool = True
    actions: List[AlertAction] = Field(default_factory=list)
    parameters: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Failed Login Threshold",
                "description": "Alert when there are too many failed login attempts",
                "event_type": "login_failure",
                "condition": "threshold",
                "threshold": 5,
                "time_window_minutes": 15,
                "severity": "high",
                "actions": [{"type": "email", "config": {"to": "admin@example.com"}}],
            }
        }
    )

    @model_validator(mode="after")
    def require_threshold(self) -> "AlertRuleCreate":
        if self.condition == AlertCondition.THRESHOLD and self.threshold is None:
            raise ValueError("threshold is required when condition is 'threshold'")
        return self


class AlertRuleUpdate(BaseModel):
    """Partial alert rule update. Unset fields are left unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    event_type: Optional[EventType] = None
    condition: Optional[AlertCondition] = None
    threshold: Optional[int] = Field(default=None, ge=1)
    time_window_minutes: Optional[int] = Field(default=None, ge=1)
    severity: Optional[Severity] = None
    enabled: Optional[bool] = None
    actions: Optional[List[AlertAction]] = None
    parameters: Optional[Dict[str, Any]] = None


class AlertRule(BaseModel):
    """Alert rule as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str = ""
    event_type: str
    condition: AlertCondition
    threshold: Optional[int] = None
    time_window_minutes: int
    severity: Severity
    enabled: bool = True
    actions: List[AlertAction] = Field(default_factory=list)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ==========================
# Alerts
# ==========================

class Alert(BaseModel):
    """An alert raised by a rule."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    rule_id: str
    rule_name: str
    severity: Severity
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    subject: str = "system"
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: datetime
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None


class AlertNotification(BaseModel):
    """Delivery record of one alert over one channel."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    alert_id: str
    channel_type: ChannelType
    status: NotificationStatus
    recipient: Optional[str] = None
    message: str
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None


class AlertStats(BaseModel):
    """Alert counts over a trailing window."""

    total: int = 0
    by_severity: Dict[str, int] = Field(default_factory=dict)
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_rule: Dict[str, int] = Field(default_factory=dict)
    period_days: int = 7


class AcknowledgeAlertRequest(BaseModel):
    """Body of an acknowledge request."""

    acknowledged_by: Optional[str] = Field(default=None, max_length=255)
