"""
Model Package Initialization
============================

Ensures models are properly registered when imported by the application.

All SQLAlchemy ORM models are exported from this module.

Usage:
    from watchpost.models import AuthAuditLog, UserSecurity
"""

from .audit_log import AuthAuditLog
from .user_security import Profile, UserSecurity, MFABackupCode
from .alert import AlertRuleRecord, AlertRecord, AlertNotificationRecord
from .report import SecurityReportRecord

__all__ = [
    "AuthAuditLog",
    "Profile",
    "UserSecurity",
    "MFABackupCode",
    "AlertRuleRecord",
    "AlertRecord",
    "AlertNotificationRecord",
    "SecurityReportRecord",
]
