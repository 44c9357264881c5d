"""
Security Reporting Service
==========================

Builds user-activity, incident, system-health and comprehensive reports
from the audit log and alert tables, and keeps saved copies.

Health score starts at 100 and loses:
- 10 when uptime is below 99.9%
- 15 when more than 100 logins failed in the last 24 hours
- 20 when more than 50 suspicious activities were counted
- 25 when any critical alert is still open

Score bands: >= 90 excellent, >= 75 good, >= 50 fair, otherwise poor.
"""

from collections import Counter
from datetime import datetime, timedelta, UTC
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from watchpost.core.config import Settings, get_settings
from watchpost.core.enums import AlertStatus, EventType, HealthStatus, ReportType, Severity
from watchpost.core.logging import get_logger
from watchpost.db.store import EventStore
from watchpost.schemas.reports import (
    ReportPeriod,
    ReportSummary,
    SavedReport,
    SecurityIncidentReport,
    SecurityReport,
    SystemHealthReport,
    UserActivityReport,
)
from watchpost.services.event_logger import AUDIT_LOG_TABLE
from watchpost.services.security_monitor import SecurityMonitor

logger = get_logger(__name__)

ALERTS_TABLE = "alerts"
REPORTS_TABLE = "security_reports"

DEFAULT_REPORT_DAYS = 7
TOP_USERS_LIMIT = 5
RECENT_CRITICAL_LIMIT = 10

SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]

LOGIN_SUCCESS_TYPES = {EventType.LOGIN_SUCCESS.value}
LOGIN_FAILURE_TYPES = {EventType.LOGIN_FAILURE.value, EventType.LOGIN_FAILED.value}


def health_status_for_score(score: int) -> str:
    if score >= 90:
        return "excellent"
    if score >= 75:
        return "good"
    if score >= 50:
        return "fair"
    return "poor"


class SecurityReportingService:
    """Generates and stores security reports."""

    def __init__(
        self,
        store: EventStore,
        monitor: Optional[SecurityMonitor] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.monitor = monitor or SecurityMonitor.get_instance()
        self.settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(UTC))

    def _period(self, start: Optional[datetime], end: Optional[datetime]) -> ReportPeriod:
        end = end or self._clock()
        start = start or end - timedelta(days=DEFAULT_REPORT_DAYS)
        return ReportPeriod(start=start, end=end)

    # =====================================
    # Individual Reports
    # =====================================

    async def generate_user_activity_report(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> UserActivityReport:
        period = self._period(start, end)
        rows = await self.store.query(
            AUDIT_LOG_TABLE,
            {"created_at__gte": period.start, "created_at__lte": period.end},
            order_by="created_at",
        )

        by_type: Counter = Counter()
        by_day: Counter = Counter()
        by_user: Counter = Counter()
        for row in rows:
            by_type[row["event_type"]] += 1
            by_day[row["created_at"].date().isoformat()] += 1
            user = row.get("user_id") or (row.get("event_data") or {}).get("email")
            if user:
                by_user[user] += 1

        return UserActivityReport(
            period=period,
            total_events=len(rows),
            unique_users=len(by_user),
            successful_logins=sum(by_type[t] for t in LOGIN_SUCCESS_TYPES),
            failed_logins=sum(by_type[t] for t in LOGIN_FAILURE_TYPES),
            mfa_events=sum(count for event_type, count in by_type.items() if event_type.startswith("mfa_")),
            events_by_type=dict(by_type),
            events_by_day=dict(sorted(by_day.items())),
            top_users=[{"user": user, "events": count} for user, count in by_user.most_common(TOP_USERS_LIMIT)],
        )

    async def generate_security_incident_report(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> SecurityIncidentReport:
        period = self._period(start, end)
        alerts = await self.store.query(
            ALERTS_TABLE,
            {"created_at__gte": period.start, "created_at__lte": period.end},
            order_by="-created_at",
        )
        events = await self.store.query(
            AUDIT_LOG_TABLE,
            {"created_at__gte": period.start, "created_at__lte": period.end},
        )

        by_severity = Counter(alert["severity"] for alert in alerts)
        by_status = Counter(alert["status"] for alert in alerts)
        by_rule = Counter(alert["rule_name"] for alert in alerts)
        event_severities = Counter((row.get("event_data") or {}).get("severity") for row in events)

        resolve_minutes = [
            (alert["resolved_at"] - alert["created_at"]).total_seconds() / 60
            for alert in alerts
            if alert.get("resolved_at") is not None
        ]

        threat_level = Severity.LOW
        for severity in SEVERITY_ORDER:
            if by_severity.get(severity.value):
                threat_level = severity

        open_alerts = by_status[AlertStatus.ACTIVE.value] + by_status[AlertStatus.ACKNOWLEDGED.value]
        recommendations: List[str] = []
        if by_severity[Severity.CRITICAL.value]:
            recommendations.append("Review and strengthen security controls")
        if open_alerts:
            recommendations.append(f"Triage {open_alerts} open alert(s)")
        if by_rule.get("Failed Login Threshold"):
            recommendations.append("Implement additional security measures to reduce failed login attempts")

        return SecurityIncidentReport(
            period=period,
            total_alerts=len(alerts),
            open_alerts=open_alerts,
            alerts_by_severity=dict(by_severity),
            alerts_by_status=dict(by_status),
            alerts_by_rule=dict(by_rule),
            critical_events=event_severities[Severity.CRITICAL.value],
            high_severity_events=event_severities[Severity.HIGH.value],
            mean_time_to_resolve_minutes=(
                round(sum(resolve_minutes) / len(resolve_minutes), 2) if resolve_minutes else None
            ),
            threat_level=threat_level,
            recent_critical_alerts=[
                {"id": alert["id"], "rule_name": alert["rule_name"], "message": alert["message"],
                 "status": alert["status"], "created_at": alert["created_at"].isoformat()}
                for alert in alerts
                if alert["severity"] == Severity.CRITICAL.value
            ][:RECENT_CRITICAL_LIMIT],
            recommendations=recommendations,
        )

    async def generate_system_health_report(self) -> SystemHealthReport:
        health = await self.monitor.check_system_health()
        security = await self.monitor.get_security_metrics()
        history = self.monitor.get_performance_history()
        performance = history[-1] if history else await self.monitor.get_performance_metrics()
        open_critical = await self.store.count(
            ALERTS_TABLE,
            {
                "severity": Severity.CRITICAL.value,
                "status__in": [AlertStatus.ACTIVE.value, AlertStatus.ACKNOWLEDGED.value],
            },
        )

        score = 100
        recommendations: List[str] = []
        if health.uptime < 99.9:
            score -= 10
            recommendations.append("Improve system uptime by addressing recent outages")
        if security.failed_logins > 100:
            score -= 15
            recommendations.append("Implement additional security measures to reduce failed login attempts")
        if security.suspicious_activities > 50:
            score -= 20
        if open_critical > 0:
            score -= 25
            recommendations.append("Resolve open critical alerts")
        if performance.average_response_time > 200:
            recommendations.append("Optimize system performance to reduce response times")
        if health.overall != HealthStatus.HEALTHY:
            recommendations.append(f"Investigate {health.overall.value} system components")
        score = max(0, score)

        return SystemHealthReport(
            overall=health.overall,
            components={
                "database": health.database,
                "authentication": health.authentication,
                "api": health.api,
            },
            uptime=health.uptime,
            health_score=score,
            health_status=health_status_for_score(score),
            average_response_time=performance.average_response_time,
            error_rate=performance.error_rate,
            login_success_rate=security.success_rate,
            recommendations=recommendations,
            generated_at=self._clock(),
        )

    async def generate_comprehensive_report(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> SecurityReport:
        period = self._period(start, end)
        activity = await self.generate_user_activity_report(period.start, period.end)
        incidents = await self.generate_security_incident_report(period.start, period.end)
        health = await self.generate_system_health_report()

        general: List[str] = []
        attempts = activity.successful_logins + activity.failed_logins
        if attempts and activity.successful_logins / attempts * 100 < 50:
            general.append("Investigate low login success rate")
        if activity.successful_logins and activity.mfa_events / activity.successful_logins * 100 < 30:
            general.append("Encourage MFA adoption among users")

        recommendations = list(dict.fromkeys([*incidents.recommendations, *health.recommendations, *general]))
        critical_issues = incidents.alerts_by_severity.get(Severity.CRITICAL.value, 0)
        if health.overall == HealthStatus.UNHEALTHY:
            critical_issues += 1
        warnings = incidents.alerts_by_severity.get(Severity.HIGH.value, 0)
        if health.overall == HealthStatus.DEGRADED:
            warnings += 1

        return SecurityReport(
            title=f"Security Report {period.start.date().isoformat()} - {period.end.date().isoformat()}",
            period=period,
            user_activity=activity,
            incidents=incidents,
            system_health=health,
            summary=ReportSummary(
                total_events=activity.total_events,
                critical_issues=critical_issues,
                warnings=warnings,
                recommendations=recommendations,
            ),
            generated_at=self._clock(),
        )

    async def generate_report(
        self,
        report_type: ReportType,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Tuple[str, BaseModel]:
        """Generate a report by type. Returns a title and the report."""
        if report_type == ReportType.USER_ACTIVITY:
            report = await self.generate_user_activity_report(start, end)
            return "User Activity Report", report
        if report_type == ReportType.SECURITY_INCIDENTS:
            report = await self.generate_security_incident_report(start, end)
            return "Security Incident Report", report
        if report_type == ReportType.SYSTEM_HEALTH:
            return "System Health Report", await self.generate_system_health_report()
        report = await self.generate_comprehensive_report(start, end)
        return report.title, report

    # =====================================
    # Saved Reports
    # =====================================

    async def save_report(
        self,
        report_type: ReportType,
        title: str,
        report: BaseModel,
        description: Optional[str] = None,
    ) -> SavedReport:
        data: Dict[str, Any] = report.model_dump(mode="json")
        period = getattr(report, "period", None)
        summary = data.get("summary") if isinstance(data.get("summary"), dict) else {}

        row = await self.store.insert(REPORTS_TABLE, {
            "report_type": report_type.value,
            "title": title,
            "description": description,
            "data": data,
            "summary": summary,
            "period_start": period.start if period else None,
            "period_end": period.end if period else None,
            "generated_at": self._clock(),
        })
        logger.info("security_report_saved", report_id=row["id"], report_type=report_type.value)
        return SavedReport.model_validate(row)

    async def get_saved_reports(
        self,
        report_type: Optional[ReportType] = None,
        limit: int = 50,
    ) -> List[SavedReport]:
        filters = {"report_type": report_type.value} if report_type else None
        rows = await self.store.query(REPORTS_TABLE, filters, order_by="-generated_at", limit=limit)
        return [SavedReport.model_validate(row) for row in rows]

    async def cleanup_old_reports(self) -> int:
        """Delete saved reports older than ``REPORT_RETENTION_DAYS``."""
        cutoff = self._clock() - timedelta(days=self.settings.REPORT_RETENTION_DAYS)
        deleted = await self.store.delete(REPORTS_TABLE, {"generated_at__lt": cutoff})
        logger.info("security_reports_cleaned_up", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted
