"""
Monitoring Routes Module
========================

Dashboard and control endpoints for the security monitor.

All endpoints require an admin role.
"""

from typing import List

from fastapi import APIRouter, Depends

from watchpost.core.dependencies.auth import get_container, require_admin
from watchpost.core.logging import get_logger
from watchpost.core.security import Principal
from watchpost.schemas import (
    ErrorResponse,
    MonitoringStatus,
    PerformanceSnapshot,
    SecurityMetrics,
    SystemHealth,
    SystemMetrics,
    UpdateIntervalRequest,
)
from watchpost.services.container import ServiceContainer

logger = get_logger(__name__)

router = APIRouter(
    prefix="/monitoring",
    tags=["Monitoring"],
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Insufficient permissions"},
    },
)


@router.get("/status", response_model=MonitoringStatus, summary="Monitoring Status")
async def monitoring_status(
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> MonitoringStatus:
    return container.monitor.get_monitoring_status()


@router.get(
    "/metrics/security",
    response_model=SecurityMetrics,
    summary="Security Metrics",
    responses={503: {"model": ErrorResponse, "description": "Metrics unavailable"}},
)
async def security_metrics(
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> SecurityMetrics:
    return await container.monitor.get_security_metrics()


@router.get("/metrics/system", response_model=SystemMetrics, summary="System Metrics")
async def system_metrics(
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> SystemMetrics:
    return await container.monitor.get_system_metrics()


@router.get("/health", response_model=SystemHealth, summary="Run Health Checks")
async def system_health(
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> SystemHealth:
    return await container.monitor.check_system_health()


@router.get("/performance", response_model=PerformanceSnapshot, summary="Sample Performance")
async def performance(
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> PerformanceSnapshot:
    return await container.monitor.get_performance_metrics()


@router.get("/performance/history", response_model=List[PerformanceSnapshot], summary="Performance History")
async def performance_history(
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> List[PerformanceSnapshot]:
    return container.monitor.get_performance_history()


@router.post("/start", response_model=MonitoringStatus, summary="Start Monitoring")
async def start_monitoring(
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> MonitoringStatus:
    logger.info("admin_monitoring_start", admin=principal.subject)
    return await container.monitor.start_monitoring()


@router.post("/stop", response_model=MonitoringStatus, summary="Stop Monitoring")
async def stop_monitoring(
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> MonitoringStatus:
    logger.info("admin_monitoring_stop", admin=principal.subject)
    return await container.monitor.stop_monitoring()


@router.put(
    "/interval",
    response_model=MonitoringStatus,
    summary="Update Check Interval",
    responses={422: {"model": ErrorResponse, "description": "Interval below one minute"}},
)
async def update_interval(
    body: UpdateIntervalRequest,
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> MonitoringStatus:
    logger.info("admin_monitoring_interval", admin=principal.subject, interval_ms=body.check_interval_ms)
    return await container.monitor.update_check_interval(body.check_interval_ms)
