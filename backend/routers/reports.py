"""
API endpoints for report generation and download.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import Report
from schemas import (
    GenerateReportRequest,
    GenerateReportResponse,
    ReportResponse,
    ReportTypeResponse,
)
from services import UnknownReportTypeError, generate_report, list_reports, report_types
from services.reports import downloadable_path, get_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["reports"])


def _to_response(report: Report) -> ReportResponse:
    response = ReportResponse.model_validate(report)
    response.download_url = f"/api/reports/{report.report_id}/download"
    return response


@router.post("/generate", response_model=GenerateReportResponse)
async def generate(
    request: GenerateReportRequest,
    db: AsyncSession = Depends(get_db),
):
    """Generate one of the fixed report types as a CSV file."""
    try:
        report = await generate_report(db, request.type)
    except UnknownReportTypeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Report generation failed for {request.type}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return GenerateReportResponse(
        message="Report generated successfully",
        report=_to_response(report),
    )


@router.get("/types", response_model=List[ReportTypeResponse])
async def types():
    """Static catalog of available report types."""
    return report_types()


@router.get("", response_model=List[ReportResponse])
async def list_all(
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Recently generated reports, newest first."""
    return [_to_response(report) for report in await list_reports(db, limit=limit)]


@router.get("/{report_id}/download")
async def download(report_id: str, db: AsyncSession = Depends(get_db)):
    report = await get_report(db, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")

    path = downloadable_path(report)
    if path is None:
        raise HTTPException(status_code=404, detail="Report file not available")

    return FileResponse(
        path,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={path.name}"},
    )
