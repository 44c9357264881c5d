"""
Alerting Service
================

Rule evaluation engine and alert lifecycle.

Conditions:
    threshold  count of events of the rule's type in the trailing window
               reaches ``threshold``
    pattern    the event matches the rule's type and every constraint in
               ``parameters["match"]`` (metadata key -> value or list of values)
    anomaly    the current window's count deviates from the mean of the
               previous ``baseline_windows`` windows by at least
               ``deviation_factor`` standard deviations

Counts always come from fresh store queries using store timestamps.

Alert lifecycle:
    active -> acknowledged -> resolved
    active -> resolved
"""

import statistics
from datetime import datetime, timedelta, UTC
from typing import Any, Awaitable, Callable, Dict, List, Optional

from watchpost.core.config import Settings, get_settings
from watchpost.core.enums import AlertCondition, AlertStatus, ChannelType, EventType, Severity
from watchpost.core.exceptions import (
    AlertNotFoundError,
    AlertRuleNotFoundError,
    AlertRuleValidationError,
    InvalidAlertTransitionError,
)
from watchpost.core.logging import get_logger
from watchpost.db.store import EventStore
from watchpost.schemas.alerts import (
    Alert,
    AlertAction,
    AlertRule,
    AlertRuleCreate,
    AlertRuleUpdate,
    AlertStats,
)
from watchpost.schemas.events import SecurityEventInput
from watchpost.services.alert_dispatcher import AlertDispatcher

logger = get_logger(__name__)

AUDIT_LOG_TABLE = "auth_audit_log"
ALERT_RULES_TABLE = "alert_rules"
ALERTS_TABLE = "alerts"

DEFAULT_BASELINE_WINDOWS = 6
DEFAULT_DEVIATION_FACTOR = 3.0
DEFAULT_MIN_EVENTS = 3

# Allowed alert status transitions
VALID_TRANSITIONS = {
    AlertStatus.ACTIVE: [AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED],
    AlertStatus.ACKNOWLEDGED: [AlertStatus.RESOLVED],
    AlertStatus.RESOLVED: [],
}

ADMIN_EMAIL = "admin@watchpost.local"
SECURITY_EMAIL = "security@watchpost.local"

DEFAULT_ALERT_RULES: List[AlertRuleCreate] = [
    AlertRuleCreate(
        id="failed-login-threshold",
        name="Failed Login Threshold",
        description="Alert when there are too many failed login attempts",
        event_type=EventType.LOGIN_FAILURE,
        condition=AlertCondition.THRESHOLD,
        threshold=5,
        time_window_minutes=15,
        severity=Severity.HIGH,
        actions=[
            AlertAction(type=ChannelType.EMAIL, config={"to": ADMIN_EMAIL}),
            AlertAction(type=ChannelType.PUSH, config={"channel": "security-alerts"}),
        ],
    ),
    AlertRuleCreate(
        id="suspicious-activity",
        name="Suspicious Activity Detection",
        description="Alert on suspicious login patterns",
        event_type=EventType.SUSPICIOUS_ACTIVITY,
        condition=AlertCondition.PATTERN,
        time_window_minutes=60,
        severity=Severity.MEDIUM,
        actions=[AlertAction(type=ChannelType.EMAIL, config={"to": SECURITY_EMAIL})],
    ),
    AlertRuleCreate(
        id="mfa-bypass-attempts",
        name="MFA Bypass Attempts",
        description="Alert on multiple MFA failures",
        event_type=EventType.MFA_FAILURE,
        condition=AlertCondition.THRESHOLD,
        threshold=3,
        time_window_minutes=30,
        severity=Severity.CRITICAL,
        actions=[
            AlertAction(type=ChannelType.EMAIL, config={"to": [ADMIN_EMAIL, SECURITY_EMAIL]}),
            AlertAction(type=ChannelType.SLACK, config={"channel": "#security-incidents"}),
        ],
    ),
    AlertRuleCreate(
        id="account-lockout",
        name="Account Lockout",
        description="Alert when accounts are locked",
        event_type=EventType.ACCOUNT_LOCKED,
        condition=AlertCondition.THRESHOLD,
        threshold=1,
        time_window_minutes=5,
        severity=Severity.MEDIUM,
        actions=[AlertAction(type=ChannelType.EMAIL, config={"to": ADMIN_EMAIL})],
    ),
    AlertRuleCreate(
        id="system-health-degraded",
        name="System Health Degraded",
        description="Alert when a monitoring cycle reports degraded health",
        event_type=EventType.SYSTEM_HEALTH_CHECK,
        condition=AlertCondition.PATTERN,
        time_window_minutes=10,
        severity=Severity.MEDIUM,
        parameters={"match": {"overall": "degraded"}},
        actions=[AlertAction(type=ChannelType.EMAIL, config={"to": ADMIN_EMAIL})],
    ),
    AlertRuleCreate(
        id="system-health-critical",
        name="System Health Critical",
        description="Alert when a monitoring cycle reports unhealthy status",
        event_type=EventType.SYSTEM_HEALTH_CHECK,
        condition=AlertCondition.PATTERN,
        time_window_minutes=10,
        severity=Severity.HIGH,
        parameters={"match": {"overall": "unhealthy"}},
        actions=[
            AlertAction(type=ChannelType.EMAIL, config={"to": [ADMIN_EMAIL, SECURITY_EMAIL]}),
            AlertAction(type=ChannelType.SLACK, config={"channel": "#security-incidents"}),
        ],
    ),
]

Evaluator = Callable[[AlertRule, SecurityEventInput], Awaitable[Optional[Dict[str, Any]]]]


class AlertingService:
    """Holds alert rules, evaluates events against them and manages alerts."""

    def __init__(
        self,
        store: EventStore,
        dispatcher: AlertDispatcher,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._evaluators: Dict[AlertCondition, Evaluator] = {
            AlertCondition.THRESHOLD: self._evaluate_threshold,
            AlertCondition.PATTERN: self._evaluate_pattern,
            AlertCondition.ANOMALY: self._evaluate_anomaly,
        }

    async def initialize(self) -> int:
        """
        Seed the default rules when no rules exist.

        Returns:
            Number of rules created
        """
        if await self.store.count(ALERT_RULES_TABLE) > 0:
            return 0
        for rule in DEFAULT_ALERT_RULES:
            await self.create_alert_rule(rule)
        logger.info("default_alert_rules_seeded", count=len(DEFAULT_ALERT_RULES))
        return len(DEFAULT_ALERT_RULES)

    # =====================================
    # Rule CRUD
    # =====================================

    @staticmethod
    def _validate_rule(condition: AlertCondition, threshold: Optional[int]) -> None:
        if condition == AlertCondition.THRESHOLD and threshold is None:
            raise AlertRuleValidationError(
                "Threshold is required for threshold rules",
                details={"field": "threshold"},
            )

    async def create_alert_rule(self, rule: AlertRuleCreate) -> AlertRule:
        self._validate_rule(rule.condition, rule.threshold)
        now = self._clock()
        record = rule.model_dump(mode="json", exclude_none=True)
        record.update(created_at=now, updated_at=now)
        row = await self.store.insert(ALERT_RULES_TABLE, record)
        logger.info("alert_rule_created", rule_id=row["id"], name=rule.name)
        return AlertRule.model_validate(row)

    async def get_alert_rules(self, enabled_only: bool = False) -> List[AlertRule]:
        filters = {"enabled": True} if enabled_only else None
        rows = await self.store.query(ALERT_RULES_TABLE, filters, order_by="created_at")
        return [AlertRule.model_validate(row) for row in rows]

    async def get_alert_rule(self, rule_id: str) -> AlertRule:
        row = await self.store.get(ALERT_RULES_TABLE, {"id": rule_id})
        if row is None:
            raise AlertRuleNotFoundError(rule_id)
        return AlertRule.model_validate(row)

    async def update_alert_rule(self, rule_id: str, updates: AlertRuleUpdate) -> AlertRule:
        current = await self.get_alert_rule(rule_id)
        patch = updates.model_dump(mode="json", exclude_unset=True)
        if not patch:
            return current

        merged = current.model_copy(update=patch)
        self._validate_rule(AlertCondition(merged.condition), merged.threshold)

        patch["updated_at"] = self._clock()
        await self.store.update(ALERT_RULES_TABLE, {"id": rule_id}, patch)
        logger.info("alert_rule_updated", rule_id=rule_id, fields=sorted(patch))
        return await self.get_alert_rule(rule_id)

    async def delete_alert_rule(self, rule_id: str) -> None:
        deleted = await self.store.delete(ALERT_RULES_TABLE, {"id": rule_id})
        if deleted == 0:
            raise AlertRuleNotFoundError(rule_id)
        logger.info("alert_rule_deleted", rule_id=rule_id)

    # =====================================
    # Evaluation
    # =====================================

    async def process_security_event(self, event: SecurityEventInput) -> List[Alert]:
        """
        Evaluate every enabled rule for the event's type.

        A failure while evaluating one rule is logged and does not stop the others.

        Returns:
            Alerts created for this event
        """
        rows = await self.store.query(
            ALERT_RULES_TABLE,
            {"event_type": event.event_type.value, "enabled": True},
        )
        created: List[Alert] = []
        for row in rows:
            rule = AlertRule.model_validate(row)
            try:
                evidence = await self._evaluators[rule.condition](rule, event)
                if evidence is None:
                    continue
                alert = await self._create_alert(rule, event, evidence)
                if alert is not None:
                    created.append(alert)
            except Exception as e:
                logger.error(
                    "alert_rule_evaluation_failed",
                    rule_id=rule.id,
                    event_type=event.event_type.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return created

    def _window_start(self, rule: AlertRule) -> datetime:
        return self._clock() - timedelta(minutes=rule.time_window_minutes)

    async def _evaluate_threshold(self, rule: AlertRule, event: SecurityEventInput) -> Optional[Dict[str, Any]]:
        count = await self.store.count(
            AUDIT_LOG_TABLE,
            {"event_type": rule.event_type, "created_at__gte": self._window_start(rule)},
        )
        if rule.threshold is None or count < rule.threshold:
            return None
        return {"count": count, "threshold": rule.threshold, "time_window_minutes": rule.time_window_minutes}

    async def _evaluate_pattern(self, rule: AlertRule, event: SecurityEventInput) -> Optional[Dict[str, Any]]:
        if event.event_type.value != rule.event_type:
            return None
        constraints: Dict[str, Any] = rule.parameters.get("match") or {}
        for key, expected in constraints.items():
            actual = event.metadata.get(key)
            allowed = expected if isinstance(expected, list) else [expected]
            if actual not in allowed:
                return None
        return {"matched": constraints} if constraints else {"matched": {"event_type": rule.event_type}}

    async def _evaluate_anomaly(self, rule: AlertRule, event: SecurityEventInput) -> Optional[Dict[str, Any]]:
        baseline_windows = int(rule.parameters.get("baseline_windows", DEFAULT_BASELINE_WINDOWS))
        deviation_factor = float(rule.parameters.get("deviation_factor", DEFAULT_DEVIATION_FACTOR))
        min_events = int(rule.parameters.get("min_events", DEFAULT_MIN_EVENTS))
        window = timedelta(minutes=rule.time_window_minutes)
        now = self._clock()

        rows = await self.store.query(
            AUDIT_LOG_TABLE,
            {"event_type": rule.event_type, "created_at__gte": now - window * (baseline_windows + 1)},
        )
        buckets = [0] * (baseline_windows + 1)
        for row in rows:
            index = int((now - row["created_at"]) / window)
            if 0 <= index <= baseline_windows:
                buckets[index] += 1

        current, baseline = buckets[0], buckets[1:]
        if current < min_events or not baseline:
            return None

        mean = statistics.fmean(baseline)
        stdev = statistics.pstdev(baseline)
        if stdev == 0:
            if current <= mean:
                return None
            score = float("inf")
        else:
            score = (current - mean) / stdev
            if score < deviation_factor:
                return None

        return {
            "count": current,
            "baseline_mean": round(mean, 2),
            "baseline_stdev": round(stdev, 2),
            "z_score": None if score == float("inf") else round(score, 2),
            "deviation_factor": deviation_factor,
        }

    # =====================================
    # Alert Creation
    # =====================================

    @staticmethod
    def generate_alert_message(rule: AlertRule, event: SecurityEventInput) -> str:
        subject = event.email or event.user_id or "unknown user"
        event_type = event.event_type

        if event_type == EventType.LOGIN_FAILURE:
            return f"{rule.description}: Multiple failed login attempts detected for {subject}"
        if event_type == EventType.SUSPICIOUS_ACTIVITY:
            return f"{rule.description}: Suspicious login pattern detected for {subject}"
        if event_type == EventType.MFA_FAILURE:
            return f"{rule.description}: Multiple MFA failures detected for {subject}"
        if event_type == EventType.ACCOUNT_LOCKED:
            return f"{rule.description}: Account locked for {subject} due to security violations"
        if event_type == EventType.SYSTEM_HEALTH_CHECK:
            return f"{rule.description}: System health is {event.metadata.get('overall', 'unknown')}"
        return f"{rule.description}: Security event detected for {subject}"

    async def _create_alert(
        self,
        rule: AlertRule,
        event: SecurityEventInput,
        evidence: Dict[str, Any],
    ) -> Optional[Alert]:
        subject = event.subject
        now = self._clock()

        if self.settings.ALERT_DEDUP_ENABLED:
            recent = await self.store.count(
                ALERTS_TABLE,
                {"rule_id": rule.id, "subject": subject, "created_at__gte": self._window_start(rule)},
            )
            if recent:
                logger.info("alert_suppressed_duplicate", rule_id=rule.id, subject=subject)
                return None

        row = await self.store.insert(ALERTS_TABLE, {
            "rule_id": rule.id,
            "rule_name": rule.name,
            "severity": rule.severity.value,
            "message": self.generate_alert_message(rule, event),
            "details": {
                "event_type": event.event_type.value,
                "user_id": event.user_id,
                "email": event.email,
                "ip_address": event.ip_address,
                "metadata": dict(event.metadata),
                "event_timestamp": event.timestamp.isoformat(),
                **evidence,
            },
            "subject": subject,
            "status": AlertStatus.ACTIVE.value,
            "created_at": now,
        })
        alert = Alert.model_validate(row)
        logger.warning(
            "alert_created",
            alert_id=alert.id,
            rule_id=rule.id,
            severity=alert.severity.value,
            subject=subject,
        )

        try:
            await self.dispatcher.send_notifications(alert, rule)
        except Exception as e:
            logger.error("alert_dispatch_failed", alert_id=alert.id, error=str(e))
        return alert

    # =====================================
    # Alert Queries & Transitions
    # =====================================

    async def get_alerts(self, status: Optional[AlertStatus] = None, limit: Optional[int] = None) -> List[Alert]:
        filters = {"status": status.value} if status else None
        rows = await self.store.query(ALERTS_TABLE, filters, order_by="-created_at", limit=limit)
        return [Alert.model_validate(row) for row in rows]

    async def get_alert(self, alert_id: str) -> Alert:
        row = await self.store.get(ALERTS_TABLE, {"id": alert_id})
        if row is None:
            raise AlertNotFoundError(alert_id)
        return Alert.model_validate(row)

    async def _transition(self, alert_id: str, target: AlertStatus, patch: Dict[str, Any]) -> Alert:
        sources = [status.value for status, targets in VALID_TRANSITIONS.items() if target in targets]
        changed = await self.store.update(
            ALERTS_TABLE,
            {"id": alert_id, "status__in": sources},
            {"status": target.value, **patch},
        )
        if changed == 0:
            current = await self.get_alert(alert_id)
            raise InvalidAlertTransitionError(alert_id, current.status.value, target.value)
        logger.info("alert_status_changed", alert_id=alert_id, status=target.value)
        return await self.get_alert(alert_id)

    async def acknowledge_alert(self, alert_id: str, acknowledged_by: Optional[str] = None) -> Alert:
        return await self._transition(
            alert_id,
            AlertStatus.ACKNOWLEDGED,
            {"acknowledged_at": self._clock(), "acknowledged_by": acknowledged_by},
        )

    async def resolve_alert(self, alert_id: str) -> Alert:
        return await self._transition(alert_id, AlertStatus.RESOLVED, {"resolved_at": self._clock()})

    async def count_open_alerts(self) -> int:
        return await self.store.count(
            ALERTS_TABLE,
            {"status__in": [AlertStatus.ACTIVE.value, AlertStatus.ACKNOWLEDGED.value]},
        )

    async def get_alert_stats(self, days: int = 7) -> AlertStats:
        since = self._clock() - timedelta(days=days)
        rows = await self.store.query(ALERTS_TABLE, {"created_at__gte": since})

        stats = AlertStats(total=len(rows), period_days=days)
        for row in rows:
            stats.by_severity[row["severity"]] = stats.by_severity.get(row["severity"], 0) + 1
            stats.by_status[row["status"]] = stats.by_status.get(row["status"], 0) + 1
            stats.by_rule[row["rule_name"]] = stats.by_rule.get(row["rule_name"], 0) + 1
        return stats
