"""
Report Schemas
==============

Shapes of generated and saved security reports.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from watchpost.core.enums import HealthStatus, ReportType, Severity


class ReportPeriod(BaseModel):
    start: datetime
    end: datetime


class UserActivityReport(BaseModel):
    period: ReportPeriod
    total_events: int = 0
    unique_users: int = 0
    successful_logins: int = 0
    failed_logins: int = 0
    mfa_events: int = 0
    events_by_type: Dict[str, int] = Field(default_factory=dict)
    events_by_day: Dict[str, int] = Field(default_factory=dict)
    top_users: List[Dict[str, Any]] = Field(default_factory=list)


class SecurityIncidentReport(BaseModel):
    period: ReportPeriod
    total_alerts: int = 0
    open_alerts: int = 0
    alerts_by_severity: Dict[str, int] = Field(default_factory=dict)
    alerts_by_status: Dict[str, int] = Field(default_factory=dict)
    alerts_by_rule: Dict[str, int] = Field(default_factory=dict)
    critical_events: int = 0
    high_severity_events: int = 0
    mean_time_to_resolve_minutes: Optional[float] = None
    threat_level: Severity = Severity.LOW
    recent_critical_alerts: List[Dict[str, Any]] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class SystemHealthReport(BaseModel):
    overall: HealthStatus
    components: Dict[str, HealthStatus] = Field(default_factory=dict)
    uptime: float = 100.0
    health_score: int = 100
    health_status: str = "excellent"
    average_response_time: float = 0.0
    error_rate: float = 0.0
    login_success_rate: float = 100.0
    recommendations: List[str] = Field(default_factory=list)
    generated_at: datetime


class ReportSummary(BaseModel):
    total_events: int = 0
    critical_issues: int = 0
    warnings: int = 0
    recommendations: List[str] = Field(default_factory=list)


class SecurityReport(BaseModel):
    """Comprehensive report combining activity, incidents and health."""

    id: Optional[str] = None
    report_type: ReportType = ReportType.COMPREHENSIVE
    title: str
    period: ReportPeriod
    user_activity: UserActivityReport
    incidents: SecurityIncidentReport
    system_health: SystemHealthReport
    summary: ReportSummary
    generated_at: datetime


class SavedReport(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    report_type: ReportType
    title: str
    description: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    summary: Dict[str, Any] = Field(default_factory=dict)
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    generated_at: datetime


class GenerateReportRequest(BaseModel):
    """Report window; defaults to the trailing seven days."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    save: bool = False
