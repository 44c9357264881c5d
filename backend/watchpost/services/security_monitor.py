"""
Security Monitor
================

Process-wide orchestrator for recurring health checks.

Lifecycle:
    stopped --start_monitoring()--> running --stop_monitoring()--> stopped
    running --update_check_interval(ms)--> running (timer restarted)

Each cycle:
1. runs the component health checks and reduces them to an overall status
2. computes security metrics for the trailing 24 hours
3. appends a performance snapshot to the bounded history
4. logs a ``system_health_check`` event, which the rule engine turns into
   alerts when the overall status is degraded or unhealthy

A failing cycle is logged as a ``health_check_failed`` event and the timer
keeps running. A cycle that fires while the previous one is still running
is skipped.
"""

import asyncio
import contextlib
import math
import threading
import time
from collections import Counter, deque
from datetime import datetime, timedelta, UTC
from typing import Callable, Deque, List, Optional, Tuple

import psutil

from watchpost.core.config import Settings, get_settings
from watchpost.core.enums import EventType, HealthStatus, Severity
from watchpost.core.exceptions import InvalidIntervalError, MonitorNotConfiguredError
from watchpost.core.logging import get_logger
from watchpost.db.store import EventStore
from watchpost.schemas.events import SecurityEventInput
from watchpost.schemas.monitoring import (
    LatencyPercentiles,
    MonitoringStatus,
    PerformanceSnapshot,
    ResourceUsage,
    SecurityMetrics,
    SystemHealth,
    SystemMetrics,
)
from watchpost.services.alerting_service import AlertingService
from watchpost.services.event_logger import AUDIT_LOG_TABLE, SecurityEventLogger
from watchpost.services.health_checks import HealthChecker, determine_overall_health

logger = get_logger(__name__)

MIN_CHECK_INTERVAL_MS = 60_000
DEFAULT_CHECK_INTERVAL_MS = 600_000
SUSPICIOUS_FAILURE_BASELINE = 10
THROUGHPUT_WINDOW_SECONDS = 60

SUCCESS_EVENT_TYPES = (EventType.LOGIN_SUCCESS.value,)
FAILURE_EVENT_TYPES = (EventType.LOGIN_FAILURE.value, EventType.LOGIN_FAILED.value)
MFA_EVENT_TYPES = (EventType.MFA_SUCCESS.value, EventType.MFA_VERIFICATION.value)

HEALTH_EVENT_SEVERITY = {
    HealthStatus.HEALTHY: Severity.LOW,
    HealthStatus.DEGRADED: Severity.MEDIUM,
    HealthStatus.UNHEALTHY: Severity.HIGH,
}


def percentile(sorted_values: List[float], pct: float) -> float:
    """Nearest-rank percentile of an already sorted list."""
    if not sorted_values:
        return 0.0
    rank = max(1, math.ceil(pct / 100 * len(sorted_values)))
    return sorted_values[rank - 1]


class SecurityMonitor:
    """
    Singleton monitor. Obtain it with ``SecurityMonitor.get_instance()``.

    Construction has no side effects. Collaborators are attached with
    ``configure()``; nothing runs until ``start_monitoring()`` is awaited.
    """

    _instance: Optional["SecurityMonitor"] = None
    _instance_lock = threading.Lock()

    def __init__(self):
        self._store: Optional[EventStore] = None
        self._event_logger: Optional[SecurityEventLogger] = None
        self._health_checker: Optional[HealthChecker] = None
        self._alerting: Optional[AlertingService] = None
        self._settings: Optional[Settings] = None
        self._clock: Callable[[], datetime] = lambda: datetime.now(UTC)

        self._check_interval_ms = DEFAULT_CHECK_INTERVAL_MS
        self._is_monitoring = False
        self._task: Optional[asyncio.Task] = None
        self._lifecycle_lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self._cycle_in_flight = False

        self._history: Deque[PerformanceSnapshot] = deque(maxlen=100)
        self._history_lock = threading.Lock()
        self._samples: Deque[Tuple[float, float, bool]] = deque(maxlen=1000)
        self._samples_lock = threading.Lock()

        self._health_lock = threading.Lock()
        self._checks_total = 0
        self._checks_up = 0
        self._last_outage: Optional[datetime] = None
        self._last_health: Optional[SystemHealth] = None

    # =====================================
    # Singleton Access
    # =====================================

    @classmethod
    def get_instance(cls) -> "SecurityMonitor":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the process-wide instance, cancelling its timer if one is running."""
        with cls._instance_lock:
            instance = cls._instance
            cls._instance = None
        if instance is not None and instance._task is not None:
            instance._task.cancel()

    def configure(
        self,
        store: EventStore,
        event_logger: SecurityEventLogger,
        health_checker: HealthChecker,
        alerting: Optional[AlertingService] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "SecurityMonitor":
        """Attach collaborators. Safe to call again while stopped."""
        settings = settings or get_settings()
        self._store = store
        self._event_logger = event_logger
        self._health_checker = health_checker
        self._alerting = alerting
        self._settings = settings
        if clock is not None:
            self._clock = clock

        if not self._is_monitoring:
            self._check_interval_ms = max(settings.MONITOR_CHECK_INTERVAL_MS, MIN_CHECK_INTERVAL_MS)
        with self._history_lock:
            self._history = deque(self._history, maxlen=settings.PERFORMANCE_HISTORY_SIZE)
        with self._samples_lock:
            self._samples = deque(self._samples, maxlen=settings.PERFORMANCE_SAMPLE_SIZE)
        return self

    @property
    def is_configured(self) -> bool:
        return self._store is not None and self._event_logger is not None and self._health_checker is not None

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise MonitorNotConfiguredError()

    # =====================================
    # Lifecycle
    # =====================================

    def _lifecycle(self) -> asyncio.Lock:
        """Lifecycle lock for the running event loop, recreated when the loop changes."""
        loop = asyncio.get_running_loop()
        if self._lifecycle_lock is None or self._lock_loop is not loop:
            self._lifecycle_lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lifecycle_lock

    async def start_monitoring(self) -> MonitoringStatus:
        """Run one cycle immediately, then every ``check_interval_ms``. No-op when running."""
        self._require_configured()
        async with self._lifecycle():
            await self._start_locked(run_immediately=True)
        return self.get_monitoring_status()

    async def stop_monitoring(self) -> MonitoringStatus:
        async with self._lifecycle():
            await self._stop_locked()
        return self.get_monitoring_status()

    async def update_check_interval(self, interval_ms: int) -> MonitoringStatus:
        """
        Change the cycle interval, restarting the timer when running.

        Raises:
            InvalidIntervalError: If ``interval_ms`` is below one minute
        """
        if interval_ms < MIN_CHECK_INTERVAL_MS:
            raise InvalidIntervalError(interval_ms, MIN_CHECK_INTERVAL_MS)

        async with self._lifecycle():
            previous = self._check_interval_ms
            self._check_interval_ms = interval_ms
            logger.info("monitoring_interval_updated", previous_ms=previous, interval_ms=interval_ms)

            if self._is_monitoring:
                await self._stop_locked()
                try:
                    await self._start_locked(run_immediately=False)
                except Exception as e:
                    logger.error("monitoring_restart_failed", interval_ms=interval_ms, error=str(e))
                    raise

        return self.get_monitoring_status()

    async def _start_locked(self, run_immediately: bool) -> None:
        if self._is_monitoring:
            logger.info("monitoring_already_running", interval_ms=self._check_interval_ms)
            return

        self._require_configured()
        logger.info("monitoring_started", interval_ms=self._check_interval_ms)
        if run_immediately:
            await self.run_cycle()
        self._task = asyncio.create_task(self._run_loop(self._check_interval_ms), name="security-monitor")
        self._is_monitoring = True

    async def _stop_locked(self) -> None:
        if not self._is_monitoring:
            logger.info("monitoring_not_running")
            return

        task, self._task = self._task, None
        self._is_monitoring = False
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("monitoring_stopped")

    async def _run_loop(self, interval_ms: int) -> None:
        while True:
            await asyncio.sleep(interval_ms / 1000)
            await self.run_cycle()

    def get_monitoring_status(self) -> MonitoringStatus:
        return MonitoringStatus(is_monitoring=self._is_monitoring, check_interval_ms=self._check_interval_ms)

    # =====================================
    # Monitoring Cycle
    # =====================================

    async def run_cycle(self) -> Optional[SystemHealth]:
        """
        Run one monitoring cycle. Never raises.

        Returns:
            The health result, or None when the cycle failed or was skipped
        """
        self._require_configured()
        if self._cycle_in_flight:
            logger.warning("monitoring_cycle_skipped", reason="previous cycle still running")
            return None

        self._cycle_in_flight = True
        try:
            health = await self.check_system_health()
            metrics = await self.get_security_metrics()
            snapshot = await self.get_performance_metrics()

            await self._event_logger.log_event(SecurityEventInput(
                event_type=EventType.SYSTEM_HEALTH_CHECK,
                severity=HEALTH_EVENT_SEVERITY[health.overall],
                metadata={
                    "overall": health.overall.value,
                    "database": health.database.value,
                    "authentication": health.authentication.value,
                    "api": health.api.value,
                    "uptime": health.uptime,
                    "failed_logins": metrics.failed_logins,
                    "success_rate": metrics.success_rate,
                    "error_rate": snapshot.error_rate,
                },
            ))
            logger.info(
                "monitoring_cycle_completed",
                overall=health.overall.value,
                failed_logins=metrics.failed_logins,
                average_response_time=snapshot.average_response_time,
            )
            return health
        except Exception as e:
            logger.error("monitoring_cycle_failed", error=str(e), error_type=type(e).__name__)
            await self._event_logger.log_event(SecurityEventInput(
                event_type=EventType.HEALTH_CHECK_FAILED,
                severity=Severity.HIGH,
                metadata={"error": str(e), "error_type": type(e).__name__},
            ))
            return None
        finally:
            self._cycle_in_flight = False

    async def check_system_health(self) -> SystemHealth:
        self._require_configured()
        components = await self._health_checker.check_components()
        overall = determine_overall_health(components.database, components.authentication, components.api)
        now = self._clock()

        with self._health_lock:
            self._checks_total += 1
            if overall == HealthStatus.UNHEALTHY:
                self._last_outage = now
            else:
                self._checks_up += 1
            uptime = round(self._checks_up / self._checks_total * 100, 2)
            last_outage = self._last_outage

        health = SystemHealth(
            database=components.database,
            authentication=components.authentication,
            api=components.api,
            overall=overall,
            uptime=uptime,
            last_checked=now,
            last_outage=last_outage,
        )
        self._last_health = health
        if overall != HealthStatus.HEALTHY:
            logger.warning("system_health_not_healthy", **components.model_dump(mode="json"), overall=overall.value)
        return health

    async def get_security_metrics(self) -> SecurityMetrics:
        """
        Login and MFA activity over the trailing 24 hours.

        Raises:
            StoreError: When the audit log cannot be read
        """
        self._require_configured()
        now = self._clock()
        rows = await self._store.query(
            AUDIT_LOG_TABLE,
            {
                "event_type__in": [*SUCCESS_EVENT_TYPES, *FAILURE_EVENT_TYPES, *MFA_EVENT_TYPES],
                "created_at__gte": now - timedelta(hours=24),
            },
        )
        counts = Counter(row["event_type"] for row in rows)

        total = sum(counts[t] for t in SUCCESS_EVENT_TYPES)
        failed = sum(counts[t] for t in FAILURE_EVENT_TYPES)
        if total == 0:
            success_rate = 100.0
        else:
            success_rate = max(0.0, round((total - failed) / total * 100, 2))

        return SecurityMetrics(
            total_logins=total,
            failed_logins=failed,
            success_rate=success_rate,
            suspicious_activities=max(0, failed - SUSPICIOUS_FAILURE_BASELINE),
            mfa_usage=sum(counts[t] for t in MFA_EVENT_TYPES),
            last_updated=now,
        )

    # =====================================
    # Performance
    # =====================================

    def record_request(self, duration_ms: float, error: bool = False) -> None:
        """Record one served request for the performance figures."""
        with self._samples_lock:
            self._samples.append((time.monotonic(), duration_ms, error))

    def _resource_usage(self) -> ResourceUsage:
        database = 0.0
        if self._health_checker is not None and self._health_checker.last_database_latency_ms is not None:
            slow_ms = self._settings.HEALTH_SLOW_RESPONSE_MS if self._settings else 2000
            database = min(100.0, self._health_checker.last_database_latency_ms / slow_ms * 100)
        return ResourceUsage(
            cpu=psutil.cpu_percent(interval=None),
            memory=psutil.virtual_memory().percent,
            database=round(database, 2),
        )

    async def get_performance_metrics(self) -> PerformanceSnapshot:
        """Sample current performance and append it to the bounded history."""
        with self._samples_lock:
            samples = list(self._samples)

        durations = sorted(duration for _, duration, _ in samples)
        errors = sum(1 for _, _, error in samples if error)
        horizon = time.monotonic() - THROUGHPUT_WINDOW_SECONDS
        recent = sum(1 for at, _, _ in samples if at >= horizon)

        snapshot = PerformanceSnapshot(
            average_response_time=round(sum(durations) / len(durations), 2) if durations else 0.0,
            peak_response_time=durations[-1] if durations else 0.0,
            error_rate=round(errors / len(samples) * 100, 2) if samples else 0.0,
            throughput=round(recent / THROUGHPUT_WINDOW_SECONDS, 2),
            latency=LatencyPercentiles(
                p50=percentile(durations, 50),
                p95=percentile(durations, 95),
                p99=percentile(durations, 99),
            ),
            resource_usage=self._resource_usage(),
            last_updated=self._clock(),
        )
        self.append_snapshot(snapshot)
        return snapshot

    def append_snapshot(self, snapshot: PerformanceSnapshot) -> None:
        with self._history_lock:
            self._history.append(snapshot)

    def get_performance_history(self) -> List[PerformanceSnapshot]:
        """Oldest first, at most ``PERFORMANCE_HISTORY_SIZE`` entries."""
        with self._history_lock:
            return list(self._history)

    # =====================================
    # Aggregate View
    # =====================================

    async def get_system_metrics(self) -> SystemMetrics:
        self._require_configured()
        health = self._last_health or await self.check_system_health()
        with self._history_lock:
            performance = self._history[-1] if self._history else None
        if performance is None:
            performance = await self.get_performance_metrics()

        active_alerts = await self._alerting.count_open_alerts() if self._alerting is not None else 0
        return SystemMetrics(
            health=health,
            performance=performance,
            security=await self.get_security_metrics(),
            monitoring=self.get_monitoring_status(),
            active_alerts=active_alerts,
        )
