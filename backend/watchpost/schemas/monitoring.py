"""
Monitoring Schemas
==================

Snapshots produced by the security monitor.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from watchpost.core.enums import HealthStatus


class SecurityMetrics(BaseModel):
    """Login and MFA activity over the trailing 24 hours."""

    total_logins: int = 0
    failed_logins: int = 0
    success_rate: float = 100.0
    suspicious_activities: int = 0
    mfa_usage: int = 0
    last_updated: datetime


class ComponentHealth(BaseModel):
    """Result of the three per-component checks."""

    database: HealthStatus
    authentication: HealthStatus
    api: HealthStatus


class SystemHealth(ComponentHealth):
    """Component health reduced to an overall status."""

    overall: HealthStatus
    uptime: float = 100.0
    last_checked: datetime
    last_outage: Optional[datetime] = None


class LatencyPercentiles(BaseModel):
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


class ResourceUsage(BaseModel):
    cpu: float = 0.0
    memory: float = 0.0
    database: float = 0.0


class PerformanceSnapshot(BaseModel):
    """One entry of the bounded performance history."""

    average_response_time: float = 0.0
    peak_response_time: float = 0.0
    error_rate: float = 0.0
    throughput: float = 0.0
    latency: LatencyPercentiles = Field(default_factory=LatencyPercentiles)
    resource_usage: ResourceUsage = Field(default_factory=ResourceUsage)
    last_updated: datetime


class MonitoringStatus(BaseModel):
    is_monitoring: bool
    check_interval_ms: int


class SystemMetrics(BaseModel):
    """Everything a dashboard needs in one call."""

    health: SystemHealth
    performance: PerformanceSnapshot
    security: SecurityMetrics
    monitoring: MonitoringStatus
    active_alerts: int = 0


class UpdateIntervalRequest(BaseModel):
    """Body of an interval change. Values below one minute are rejected by the monitor."""

    check_interval_ms: int
