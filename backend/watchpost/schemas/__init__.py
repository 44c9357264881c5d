"""
Schemas Package Initialization
==============================

Exports all Pydantic schemas for the application.

Usage:
    from watchpost.schemas import SecurityEventInput, AlertRuleCreate
"""

# Event schemas
from watchpost.schemas.events import (
    SecurityEventInput,
    SecurityEventRecord,
)

# Alerting schemas
from watchpost.schemas.alerts import (
    AlertAction,
    AlertRuleCreate,
    AlertRuleUpdate,
    AlertRule,
    Alert,
    AlertNotification,
    AlertStats,
    AcknowledgeAlertRequest,
)

# Monitoring schemas
from watchpost.schemas.monitoring import (
    SecurityMetrics,
    ComponentHealth,
    SystemHealth,
    LatencyPercentiles,
    ResourceUsage,
    PerformanceSnapshot,
    MonitoringStatus,
    SystemMetrics,
    UpdateIntervalRequest,
)

# Auth schemas
from watchpost.schemas.auth import (
    ErrorResponse,
    LoginAttemptRequest,
    LoginAttemptResult,
    AccountStatus,
    MFAUserRequest,
    MFACodeRequest,
    MFAResult,
    MFASetupResult,
    MFAStatus,
    PasswordCheckRequest,
    PasswordValidationResult,
    PasswordChangeRequest,
    PasswordChangeRecorded,
)

# Report schemas
from watchpost.schemas.reports import (
    ReportPeriod,
    UserActivityReport,
    SecurityIncidentReport,
    SystemHealthReport,
    ReportSummary,
    SecurityReport,
    SavedReport,
    GenerateReportRequest,
)

__all__ = [
    "SecurityEventInput",
    "SecurityEventRecord",
    "AlertAction",
    "AlertRuleCreate",
    "AlertRuleUpdate",
    "AlertRule",
    "Alert",
    "AlertNotification",
    "AlertStats",
    "AcknowledgeAlertRequest",
    "SecurityMetrics",
    "ComponentHealth",
    "SystemHealth",
    "LatencyPercentiles",
    "ResourceUsage",
    "PerformanceSnapshot",
    "MonitoringStatus",
    "SystemMetrics",
    "UpdateIntervalRequest",
    "ErrorResponse",
    "LoginAttemptRequest",
    "LoginAttemptResult",
    "AccountStatus",
    "MFAUserRequest",
    "MFACodeRequest",
    "MFAResult",
    "MFASetupResult",
    "MFAStatus",
    "PasswordCheckRequest",
    "PasswordValidationResult",
    "PasswordChangeRequest",
    "PasswordChangeRecorded",
    "ReportPeriod",
    "UserActivityReport",
    "SecurityIncidentReport",
    "SystemHealthReport",
    "ReportSummary",
    "SecurityReport",
    "SavedReport",
    "GenerateReportRequest",
]
