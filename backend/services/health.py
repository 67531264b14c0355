"""
Liveness of the service itself, served on /health.

The database ping is shared with the pipeline health document
(services.system_health); on top of it this module reports whether CSV
reports can be written, which providers are registered, and how the most
recent reconciliation run ended. Only the database is critical. A failed
run or an unwritable reports directory degrades the service, it does not
take it down.
"""

import logging
import os
import time
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.base import ProviderAdapter
from config import settings
from models import ReconciliationRun
from services.system_health import ping_database
from utils.timestamps import utcnow

logger = logging.getLogger(__name__)

_start_time = time.monotonic()

CRITICAL_CHECKS = {"database"}


class ComponentHealth(BaseModel):
    name: str
    status: str  # "ok" | "degraded" | "error"
    message: Optional[str] = None
    response_time_ms: Optional[float] = None


class HealthResponse(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    app: str
    version: str
    uptime_seconds: float
    checks: List[ComponentHealth]
    timestamp: str


async def check_database(db: AsyncSession) -> ComponentHealth:
    database, error = await ping_database(db)
    return ComponentHealth(
        name="database",
        status="ok" if database.is_connected else "error",
        message=error,
        response_time_ms=database.response_time_ms,
    )


def check_reports_dir() -> ComponentHealth:
    """Generated CSVs land in REPORTS_DIR; it must be a writable directory."""
    path = Path(settings.REPORTS_DIR)
    if not path.exists():
        problem = "does not exist"
    elif not path.is_dir():
        problem = "is not a directory"
    elif not os.access(path, os.W_OK):
        problem = "is not writable"
    else:
        return ComponentHealth(name="reports_directory", status="ok")
    return ComponentHealth(
        name="reports_directory",
        status="error",
        message=f"Reports path {problem}: {path}",
    )


def check_providers(adapters: Sequence[ProviderAdapter]) -> ComponentHealth:
    names = [adapter.provider_name for adapter in adapters]
    if not names:
        return ComponentHealth(
            name="providers",
            status="ok",
            message="No providers registered; reconciliation has nothing to fetch",
        )
    return ComponentHealth(name="providers", status="ok", message=", ".join(names))


async def check_latest_run(db: AsyncSession) -> ComponentHealth:
    """How the newest reconciliation run ended."""
    try:
        run = await db.scalar(
            select(ReconciliationRun)
            .order_by(ReconciliationRun.started_at.desc())
            .limit(1)
        )
    except SQLAlchemyError as e:
        logger.error(f"Could not read reconciliation history: {e}")
        return ComponentHealth(name="latest_reconciliation", status="error", message=str(e))

    if run is None:
        return ComponentHealth(
            name="latest_reconciliation", status="ok", message="No run recorded yet"
        )
    if not run.is_success:
        return ComponentHealth(
            name="latest_reconciliation",
            status="error",
            message=f"Run {run.run_id} failed: {run.error}",
        )
    if run.provider_errors:
        failed = ", ".join(sorted(run.provider_errors))
        return ComponentHealth(
            name="latest_reconciliation",
            status="degraded",
            message=f"Run {run.run_id} completed; failed providers: {failed}",
        )
    return ComponentHealth(
        name="latest_reconciliation",
        status="ok",
        message=f"Run {run.run_id} completed at {run.completed_at.isoformat()}",
    )


async def run_health_checks(
    db: AsyncSession,
    adapters: Sequence[ProviderAdapter] = (),
) -> HealthResponse:
    """Run all liveness checks and return the aggregated status."""
    checks = [await check_database(db)]
    if checks[0].status == "ok":
        checks.append(await check_latest_run(db))
    checks.append(check_reports_dir())
    checks.append(check_providers(adapters))

    if any(c.status == "error" and c.name in CRITICAL_CHECKS for c in checks):
        overall = "unhealthy"
    elif any(c.status != "ok" for c in checks):
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        uptime_seconds=round(time.monotonic() - _start_time, 1),
        checks=checks,
        timestamp=utcnow().isoformat(),
    )
