"""
Reporting endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import PlainTextResponse, Response

from .auth import CoopSystem, get_coop_system, require_permission
from ..reporting import ReportType, ReportFormat, REPORT_CATALOG
from ..rbac import User


router = APIRouter()


@router.get("")
async def reports_overview(
    user: User = Depends(require_permission("reports")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Statistics and charts of the reports page"""
    return system.reporting.reports_overview()


@router.get("/catalog")
async def report_catalog(user: User = Depends(require_permission("reports"))):
    return {"reports": REPORT_CATALOG}


@router.get("/{report_type}")
async def generate_report(
    report_type: ReportType,
    year: Optional[int] = Query(None, ge=1900, le=9999),
    user: User = Depends(require_permission("reports")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Run one of the standard reports for a year"""
    try:
        result = system.reporting.generate_report(report_type, year=year, generated_by=user.email)
        return system.reporting.export_report(result, ReportFormat.DICT)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{report_type}/export")
async def export_report(
    report_type: ReportType,
    format: str = "csv",
    year: Optional[int] = Query(None, ge=1900, le=9999),
    user: User = Depends(require_permission("reports")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Download a report as CSV or JSON"""
    try:
        export_format = ReportFormat[format.upper()]
    except KeyError:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {format}")

    try:
        result = system.reporting.generate_report(report_type, year=year, generated_by=user.email)
        exported = system.reporting.export_report(result, export_format, exported_by=user.email)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    filename = f"{report_type.value}_{result.metadata.get('year', '')}"
    if export_format == ReportFormat.CSV:
        return PlainTextResponse(content=exported, media_type="text/csv", headers={
            "Content-Disposition": f'attachment; filename="{filename}.csv"'
        })
    if export_format == ReportFormat.JSON:
        return Response(content=exported, media_type="application/json", headers={
            "Content-Disposition": f'attachment; filename="{filename}.json"'
        })
    return exported
