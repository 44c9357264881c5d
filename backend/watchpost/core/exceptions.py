"""
Centralized Exception Handling Module
=====================================

Defines custom exception classes for the application.

Expected business outcomes (locked accounts, invalid MFA codes) are
returned as typed results by the services; the exceptions below cover
validation, lookup, lifecycle and infrastructure failures.

Usage:
    raise InvalidIntervalError(30000)
    raise AlertNotFoundError(alert_id)
"""

from typing import Any, Dict, Optional

from fastapi import status


class WatchpostException(Exception):
    """
    Base exception class for the Watchpost application.

    All custom exceptions should inherit from this class.
    """

    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)


# ==========================
# Authentication Exceptions
# ==========================

class AuthenticationError(WatchpostException):
    """Raised when authentication fails."""

    error_code = "AUTHENTICATION_FAILED"

    def __init__(
        self,
        message: str = "Could not validate credentials",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
        )


class TokenInvalidError(AuthenticationError):
    """Raised when a bearer token is invalid or expired."""

    error_code = "TOKEN_INVALID"

    def __init__(self, reason: str = "Invalid token"):
        super().__init__(
            message="Invalid token",
            details={"reason": reason}
        )


# ==========================
# Authorization Exceptions
# ==========================

class AuthorizationError(WatchpostException):
    """Raised when the caller lacks required permissions."""

    error_code = "FORBIDDEN"

    def __init__(
        self,
        message: str = "Insufficient permissions",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
        )


class RoleNotAuthorizedError(AuthorizationError):
    """Raised when none of the caller's roles is authorized for the action."""

    def __init__(self, required_roles: list):
        super().__init__(
            message="Your role is not authorized for this action",
            details={"required_roles": required_roles}
        )


# ==========================
# Resource Exceptions
# ==========================

class NotFoundError(WatchpostException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", identifier: Optional[str] = None):
        message = f"{resource} not found"
        details = {"resource": resource}
        if identifier:
            details["identifier"] = identifier
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
        )


class AlertNotFoundError(NotFoundError):
    """Raised when an alert is not found."""

    error_code = "ALERT_NOT_FOUND"

    def __init__(self, identifier: Optional[str] = None):
        super().__init__(resource="Alert", identifier=identifier)


class AlertRuleNotFoundError(NotFoundError):
    """Raised when an alert rule is not found."""

    error_code = "ALERT_RULE_NOT_FOUND"

    def __init__(self, identifier: Optional[str] = None):
        super().__init__(resource="Alert rule", identifier=identifier)


class AccountNotFoundError(NotFoundError):
    """Raised when an email does not resolve to a known account."""

    error_code = "ACCOUNT_NOT_FOUND"

    def __init__(self, identifier: Optional[str] = None):
        super().__init__(resource="Account", identifier=identifier)


# ==========================
# Validation Exceptions
# ==========================

class ValidationError(WatchpostException):
    """Raised when validation fails."""

    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation error",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class InvalidIntervalError(ValidationError):
    """Raised when a monitoring interval is below the one minute floor."""

    error_code = "INVALID_INTERVAL"

    def __init__(self, interval_ms: int, minimum_ms: int = 60_000):
        super().__init__(
            message="Check interval must be at least 1 minute",
            details={"interval_ms": interval_ms, "minimum_ms": minimum_ms}
        )


class AlertRuleValidationError(ValidationError):
    """Raised when an alert rule definition is inconsistent."""

    error_code = "INVALID_ALERT_RULE"


# ==========================
# State Transition Exceptions
# ==========================

class InvalidAlertTransitionError(WatchpostException):
    """Raised when an alert cannot move to the requested status."""

    error_code = "INVALID_ALERT_TRANSITION"

    def __init__(self, alert_id: str, current_status: str, target_status: str):
        super().__init__(
            message=f"Cannot move alert from {current_status} to {target_status}",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "alert_id": alert_id,
                "current_status": current_status,
                "target_status": target_status,
            }
        )


# ==========================
# Infrastructure Exceptions
# ==========================

class StoreError(WatchpostException):
    """Raised when the durable event store cannot complete an operation."""

    error_code = "STORE_UNAVAILABLE"

    def __init__(self, message: str = "Event store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
        )


class MonitorNotConfiguredError(WatchpostException):
    """Raised when the security monitor is used before collaborators are attached."""

    error_code = "MONITOR_NOT_CONFIGURED"

    def __init__(self):
        super().__init__(
            message="Security monitor has not been configured",
        )
