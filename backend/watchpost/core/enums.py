"""
Enumeration Module
==================

Defines enumerations used across the application.
"""

from enum import Enum


class EventType(str, Enum):
    """Security event types recorded in the audit log."""

    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    # Older clients report failures under this name
    LOGIN_FAILED = "login_failed"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNLOCKED = "account_unlocked"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    BRUTE_FORCE_ATTEMPT = "brute_force_attempt"
    PASSWORD_CHANGE = "password_change"
    SESSION_EXPIRED = "session_expired"
    PERMISSION_DENIED = "permission_denied"
    MFA_SETUP_INITIATED = "mfa_setup_initiated"
    MFA_ENABLED = "mfa_enabled"
    MFA_DISABLED = "mfa_disabled"
    MFA_SUCCESS = "mfa_success"
    MFA_FAILURE = "mfa_failure"
    # Older clients report MFA checks under this name
    MFA_VERIFICATION = "mfa_verification"
    MFA_BACKUP_USED = "mfa_backup_used"
    MFA_BACKUP_REGENERATED = "mfa_backup_regenerated"
    SYSTEM_HEALTH_CHECK = "system_health_check"
    HEALTH_CHECK_FAILED = "health_check_failed"


class Severity(str, Enum):
    """Severity taxonomy shared by events, rules and alerts."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertCondition(str, Enum):
    """How an alert rule decides whether to fire."""

    THRESHOLD = "threshold"
    PATTERN = "pattern"
    ANOMALY = "anomaly"


class AlertStatus(str, Enum):
    """Lifecycle statuses for alerts."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class NotificationStatus(str, Enum):
    """Delivery status of a single alert notification."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ChannelType(str, Enum):
    """Notification channel types an alert action can target."""

    EMAIL = "email"
    PUSH = "push"
    WEBHOOK = "webhook"
    SMS = "sms"
    SLACK = "slack"


class HealthStatus(str, Enum):
    """Health of a single component or of the whole system."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class MFAErrorCode(str, Enum):
    """Typed failure reasons returned by the MFA service."""

    MFA_NOT_SETUP = "MFA_NOT_SETUP"
    MFA_ALREADY_ENABLED = "MFA_ALREADY_ENABLED"
    MFA_NOT_ENABLED = "MFA_NOT_ENABLED"
    INVALID_CODE = "INVALID_CODE"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class ReportType(str, Enum):
    """Kinds of security reports that can be generated and saved."""

    USER_ACTIVITY = "user_activity"
    SECURITY_INCIDENTS = "security_incidents"
    SYSTEM_HEALTH = "system_health"
    COMPREHENSIVE = "comprehensive"


class PasswordStrength(str, Enum):
    """Strength bands for a 0-100 password score."""

    VERY_WEAK = "very_weak"
    WEAK = "weak"
    MEDIUM = "medium"
    STRONG = "strong"
    VERY_STRONG = "very_strong"
