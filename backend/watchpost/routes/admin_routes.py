"""
Admin Routes Module
===================

Administrative endpoints for security operations.

Features:
- Account unlock
- Alert rule management
- Alert triage (acknowledge / resolve) and notification history
- Security event and login analytics queries

Security:
- All endpoints require an admin role
- Mutating actions are logged with the acting subject
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from watchpost.core.dependencies.auth import get_container, require_admin
from watchpost.core.enums import AlertStatus
from watchpost.core.exceptions import AccountNotFoundError
from watchpost.core.logging import get_logger
from watchpost.core.security import Principal
from watchpost.schemas import (
    AcknowledgeAlertRequest,
    Alert,
    AlertNotification,
    AlertRule,
    AlertRuleCreate,
    AlertRuleUpdate,
    AlertStats,
    ErrorResponse,
    SecurityEventRecord,
)
from watchpost.services.container import ServiceContainer

logger = get_logger(__name__)


# =====================================
# Router Setup
# =====================================

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Insufficient permissions"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)


# =====================================
# Accounts
# =====================================

@router.post(
    "/accounts/{email}/unlock",
    summary="Unlock Account",
    description="Clear the lock and failed-attempt counter of an account.",
    responses={404: {"model": ErrorResponse, "description": "Account not found"}},
)
async def unlock_account(
    email: str,
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> dict:
    if not await container.login_tracker.unlock_account(email):
        raise AccountNotFoundError(email)

    logger.info("admin_account_unlocked", email=email, admin=principal.subject)
    return {"message": "Account unlocked", "email": email}


# =====================================
# Alert Rules
# =====================================

@router.get("/alert-rules", response_model=List[AlertRule], summary="List Alert Rules")
async def list_alert_rules(
    enabled_only: bool = Query(default=False),
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> List[AlertRule]:
    return await container.alerting.get_alert_rules(enabled_only=enabled_only)


@router.post(
    "/alert-rules",
    response_model=AlertRule,
    status_code=status.HTTP_201_CREATED,
    summary="Create Alert Rule",
)
async def create_alert_rule(
    rule: AlertRuleCreate,
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> AlertRule:
    created = await container.alerting.create_alert_rule(rule)
    logger.info("admin_alert_rule_created", rule_id=created.id, admin=principal.subject)
    return created


@router.get(
    "/alert-rules/{rule_id}",
    response_model=AlertRule,
    summary="Get Alert Rule",
    responses={404: {"model": ErrorResponse, "description": "Rule not found"}},
)
async def get_alert_rule(
    rule_id: str,
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> AlertRule:
    return await container.alerting.get_alert_rule(rule_id)


@router.patch(
    "/alert-rules/{rule_id}",
    response_model=AlertRule,
    summary="Update Alert Rule",
    responses={404: {"model": ErrorResponse, "description": "Rule not found"}},
)
async def update_alert_rule(
    rule_id: str,
    updates: AlertRuleUpdate,
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> AlertRule:
    updated = await container.alerting.update_alert_rule(rule_id, updates)
    logger.info("admin_alert_rule_updated", rule_id=rule_id, admin=principal.subject)
    return updated


@router.delete(
    "/alert-rules/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Alert Rule",
    responses={404: {"model": ErrorResponse, "description": "Rule not found"}},
)
async def delete_alert_rule(
    rule_id: str,
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> None:
    await container.alerting.delete_alert_rule(rule_id)
    logger.info("admin_alert_rule_deleted", rule_id=rule_id, admin=principal.subject)


# =====================================
# Alerts
# =====================================

@router.get("/alerts", response_model=List[Alert], summary="List Alerts")
async def list_alerts(
    alert_status: Optional[AlertStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=1000),
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> List[Alert]:
    return await container.alerting.get_alerts(status=alert_status, limit=limit)


@router.get("/alerts/stats", response_model=AlertStats, summary="Alert Statistics")
async def alert_stats(
    days: int = Query(default=7, ge=1, le=365),
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> AlertStats:
    return await container.alerting.get_alert_stats(days=days)


@router.get(
    "/alerts/{alert_id}",
    response_model=Alert,
    summary="Get Alert",
    responses={404: {"model": ErrorResponse, "description": "Alert not found"}},
)
async def get_alert(
    alert_id: str,
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> Alert:
    return await container.alerting.get_alert(alert_id)


@router.post(
    "/alerts/{alert_id}/acknowledge",
    response_model=Alert,
    summary="Acknowledge Alert",
    responses={
        404: {"model": ErrorResponse, "description": "Alert not found"},
        409: {"model": ErrorResponse, "description": "Alert cannot be acknowledged"},
    },
)
async def acknowledge_alert(
    alert_id: str,
    body: Optional[AcknowledgeAlertRequest] = None,
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> Alert:
    acknowledged_by = (body.acknowledged_by if body else None) or principal.subject
    return await container.alerting.acknowledge_alert(alert_id, acknowledged_by=acknowledged_by)


@router.post(
    "/alerts/{alert_id}/resolve",
    response_model=Alert,
    summary="Resolve Alert",
    responses={
        404: {"model": ErrorResponse, "description": "Alert not found"},
        409: {"model": ErrorResponse, "description": "Alert already resolved"},
    },
)
async def resolve_alert(
    alert_id: str,
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> Alert:
    return await container.alerting.resolve_alert(alert_id)


@router.get(
    "/alerts/{alert_id}/notifications",
    response_model=List[AlertNotification],
    summary="Alert Notifications",
)
async def alert_notifications(
    alert_id: str,
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> List[AlertNotification]:
    await container.alerting.get_alert(alert_id)
    return await container.dispatcher.get_notifications(alert_id)


# =====================================
# Security Events & Analytics
# =====================================

@router.get("/security-events", response_model=List[SecurityEventRecord], summary="Recent Security Events")
async def list_security_events(
    days: int = Query(default=7, ge=1, le=365),
    limit: int = Query(default=1000, ge=1, le=5000),
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> List[SecurityEventRecord]:
    return await container.event_logger.get_system_security_events(days=days, limit=limit)


@router.get(
    "/users/{user_id}/security-events",
    response_model=List[SecurityEventRecord],
    summary="User Security Events",
)
async def list_user_security_events(
    user_id: str,
    days: int = Query(default=30, ge=1, le=365),
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> List[SecurityEventRecord]:
    return await container.event_logger.get_user_security_events(user_id, days=days)


@router.get("/analytics/logins", summary="Login Statistics")
async def login_stats(
    hours: int = Query(default=24, ge=1, le=720),
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.analytics.get_login_stats(hours=hours)


@router.get("/analytics/suspicious-activity", summary="Suspicious Source Addresses")
async def suspicious_activity(
    user_id: Optional[str] = Query(default=None),
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    return await container.analytics.get_suspicious_activity(user_id=user_id)
