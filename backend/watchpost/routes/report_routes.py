"""
Report Routes Module
====================

Generate and list security reports. Admin only.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from watchpost.core.dependencies.auth import get_container, require_admin
from watchpost.core.enums import ReportType
from watchpost.core.logging import get_logger
from watchpost.core.security import Principal
from watchpost.schemas import ErrorResponse, GenerateReportRequest, SavedReport
from watchpost.services.container import ServiceContainer

logger = get_logger(__name__)

router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Insufficient permissions"},
    },
)


@router.post("/{report_type}", summary="Generate Report")
async def generate_report(
    report_type: ReportType,
    body: Optional[GenerateReportRequest] = None,
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """
    Generate a report for the requested window (default: last seven days).

    With ``save=true`` the report is also stored and its id returned.
    """
    body = body or GenerateReportRequest()
    title, report = await container.reporting.generate_report(report_type, body.start, body.end)

    response: Dict[str, Any] = {
        "report_type": report_type.value,
        "title": title,
        "report": report.model_dump(mode="json"),
    }
    if body.save:
        saved = await container.reporting.save_report(report_type, title, report)
        response["id"] = saved.id

    logger.info("security_report_generated", report_type=report_type.value, saved=body.save, admin=principal.subject)
    return response


@router.get("", response_model=List[SavedReport], summary="List Saved Reports")
async def list_reports(
    report_type: Optional[ReportType] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> List[SavedReport]:
    return await container.reporting.get_saved_reports(report_type=report_type, limit=limit)


@router.delete("/expired", summary="Delete Expired Reports")
async def cleanup_reports(
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, int]:
    return {"deleted": await container.reporting.cleanup_old_reports()}
