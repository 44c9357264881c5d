"""
Security Event Logger
=====================

Classifies and records security events.

Every call to ``log_event``:
1. persists the event to the audit log
2. feeds the analytics counters
3. hands critical events to the security-alert path
4. forwards the event to the rule engine when one is attached

Each step is isolated: a failure is logged and the remaining steps still
run. Nothing raised inside ``log_event`` ever reaches the caller.
"""

from __future__ import annotations

from datetime import datetime, timedelta, UTC
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from watchpost.core.enums import EventType, Severity
from watchpost.core.logging import get_logger
from watchpost.db.store import EventStore
from watchpost.schemas.events import SecurityEventInput, SecurityEventRecord

if TYPE_CHECKING:
    from watchpost.services.alert_dispatcher import AlertDispatcher
    from watchpost.services.alerting_service import AlertingService
    from watchpost.services.analytics_service import AuthAnalyticsService

logger = get_logger(__name__)

AUDIT_LOG_TABLE = "auth_audit_log"

CRITICAL_EVENT_TYPES = frozenset({
    EventType.BRUTE_FORCE_ATTEMPT,
    EventType.ACCOUNT_LOCKED,
    EventType.SUSPICIOUS_ACTIVITY,
})

LOG_LEVEL_BY_SEVERITY = {
    Severity.LOW: "info",
    Severity.MEDIUM: "info",
    Severity.HIGH: "warning",
    Severity.CRITICAL: "critical",
}


def is_critical_event(event: SecurityEventInput) -> bool:
    """An event is critical by type or by severity."""
    return event.event_type in CRITICAL_EVENT_TYPES or event.severity == Severity.CRITICAL


class SecurityEventLogger:
    """
    Records security events and fans them out to the rest of the core.

    The rule engine is attached after construction because it depends on
    the dispatcher, which in turn is needed here for critical alerts.
    """

    def __init__(
        self,
        store: EventStore,
        analytics: Optional["AuthAnalyticsService"] = None,
        dispatcher: Optional["AlertDispatcher"] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.analytics = analytics
        self.dispatcher = dispatcher
        self._clock = clock or (lambda: datetime.now(UTC))
        self._alert_engine: Optional["AlertingService"] = None

    def attach_alert_engine(self, engine: "AlertingService") -> None:
        """Route every logged event through the rule engine."""
        self._alert_engine = engine

    # =====================================
    # Core Logging
    # =====================================

    async def log_event(self, event: SecurityEventInput) -> None:
        """
        Record a security event. Never raises.

        Args:
            event: Event reported by a collaborator
        """
        getattr(logger, LOG_LEVEL_BY_SEVERITY[event.severity])(
            "security_event",
            event_type=event.event_type.value,
            severity=event.severity.value,
            user_id=event.user_id,
            email=event.email,
            ip_address=event.ip_address,
        )

        try:
            await self.store.insert(AUDIT_LOG_TABLE, self._to_record(event))
        except Exception as e:
            logger.error(
                "security_event_persist_failed",
                event_type=event.event_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )

        if self.analytics is not None:
            try:
                self.analytics.track_security_event(event)
            except Exception as e:
                logger.error("security_event_analytics_failed", event_type=event.event_type.value, error=str(e))

        if is_critical_event(event):
            await self._handle_critical_event(event)

        if self._alert_engine is not None:
            try:
                await self._alert_engine.process_security_event(event)
            except Exception as e:
                logger.error(
                    "security_event_rule_evaluation_failed",
                    event_type=event.event_type.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def _to_record(self, event: SecurityEventInput) -> Dict[str, Any]:
        return {
            "event_type": event.event_type.value,
            "user_id": event.user_id,
            "ip_address": event.ip_address,
            "user_agent": event.user_agent,
            "event_data": {
                "email": event.email,
                "severity": event.severity.value,
                "metadata": dict(event.metadata),
                "timestamp": event.timestamp.isoformat(),
            },
            "created_at": self._clock(),
        }

    async def _handle_critical_event(self, event: SecurityEventInput) -> None:
        logger.critical(
            "critical_security_event",
            event_type=event.event_type.value,
            user_id=event.user_id,
            email=event.email,
            ip_address=event.ip_address,
            metadata=dict(event.metadata),
        )
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.send_security_alert(event)
        except Exception as e:
            logger.error("security_alert_send_failed", event_type=event.event_type.value, error=str(e))

    # =====================================
    # Convenience Wrappers
    # =====================================

    async def log_login_success(
        self,
        user_id: Optional[str],
        email: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.log_event(SecurityEventInput(
            event_type=EventType.LOGIN_SUCCESS,
            user_id=user_id,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata=metadata or {},
            severity=Severity.LOW,
        ))

    async def log_login_failure(
        self,
        email: str,
        reason: str,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.log_event(SecurityEventInput(
            event_type=EventType.LOGIN_FAILURE,
            user_id=user_id,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"failure_reason": reason, **(metadata or {})},
            severity=Severity.HIGH,
        ))

    async def log_account_locked(
        self,
        user_id: Optional[str],
        email: str,
        reason: str,
        lockout_expiry: Optional[datetime] = None,
        ip_address: Optional[str] = None,
    ) -> None:
        metadata: Dict[str, Any] = {"reason": reason}
        if lockout_expiry is not None:
            metadata["lockout_expiry"] = lockout_expiry.isoformat()
        await self.log_event(SecurityEventInput(
            event_type=EventType.ACCOUNT_LOCKED,
            user_id=user_id,
            email=email,
            ip_address=ip_address,
            metadata=metadata,
            severity=Severity.CRITICAL,
        ))

    async def log_suspicious_activity(
        self,
        user_id: Optional[str],
        email: Optional[str],
        activity: str,
        ip_address: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.log_event(SecurityEventInput(
            event_type=EventType.SUSPICIOUS_ACTIVITY,
            user_id=user_id,
            email=email,
            ip_address=ip_address,
            metadata={"activity": activity, **(metadata or {})},
            severity=Severity.CRITICAL,
        ))

    async def log_brute_force_attempt(
        self,
        email: str,
        ip_address: Optional[str],
        attempt_count: int,
    ) -> None:
        await self.log_event(SecurityEventInput(
            event_type=EventType.BRUTE_FORCE_ATTEMPT,
            email=email,
            ip_address=ip_address,
            metadata={"attempt_count": attempt_count},
            severity=Severity.CRITICAL,
        ))

    async def log_password_change(self, user_id: str, email: str, ip_address: Optional[str] = None) -> None:
        await self.log_event(SecurityEventInput(
            event_type=EventType.PASSWORD_CHANGE,
            user_id=user_id,
            email=email,
            ip_address=ip_address,
            severity=Severity.MEDIUM,
        ))

    async def log_session_expired(self, user_id: str, email: Optional[str] = None) -> None:
        await self.log_event(SecurityEventInput(
            event_type=EventType.SESSION_EXPIRED,
            user_id=user_id,
            email=email,
            severity=Severity.LOW,
        ))

    async def log_permission_denied(
        self,
        user_id: Optional[str],
        email: Optional[str],
        resource: str,
        action: str,
        ip_address: Optional[str] = None,
    ) -> None:
        await self.log_event(SecurityEventInput(
            event_type=EventType.PERMISSION_DENIED,
            user_id=user_id,
            email=email,
            ip_address=ip_address,
            metadata={"resource": resource, "action": action},
            severity=Severity.HIGH,
        ))

    # =====================================
    # Query Surface
    # =====================================

    async def get_user_security_events(self, user_id: str, days: int = 30) -> List[SecurityEventRecord]:
        """Events for one user, newest first. Returns an empty list if the store fails."""
        since = self._clock() - timedelta(days=days)
        try:
            rows = await self.store.query(
                AUDIT_LOG_TABLE,
                {"user_id": user_id, "created_at__gte": since},
                order_by="-created_at",
            )
        except Exception as e:
            logger.error("user_security_events_query_failed", user_id=user_id, error=str(e))
            return []
        return [SecurityEventRecord.from_row(row) for row in rows]

    async def get_system_security_events(self, days: int = 7, limit: int = 1000) -> List[SecurityEventRecord]:
        """Recent events across all users, newest first. Returns an empty list if the store fails."""
        since = self._clock() - timedelta(days=days)
        try:
            rows = await self.store.query(
                AUDIT_LOG_TABLE,
                {"created_at__gte": since},
                order_by="-created_at",
                limit=limit,
            )
        except Exception as e:
            logger.error("system_security_events_query_failed", error=str(e))
            return []
        return [SecurityEventRecord.from_row(row) for row in rows]
