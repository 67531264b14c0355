"""
Operational health of the reconciliation pipeline.

Aggregates per-provider reachability and sync history, store connectivity
and the (not yet implemented) job queue into one status document.
"""

import logging
import time
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.base import ProviderAdapter
from models import ReconciliationRun
from services.reconciliation import provider_outcomes
from utils.timestamps import utcnow

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 200


class _HealthModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProviderHealth(_HealthModel):
    provider_name: str
    is_healthy: bool
    last_successful_sync: Optional[datetime] = None
    sync_latency_seconds: Optional[float] = None
    last_error: Optional[str] = None
    error_count_24h: int = Field(0, alias="errorCount24h")


class QueueHealth(_HealthModel):
    pending_jobs: int = 0
    processing_jobs: int = 0
    failed_jobs: int = 0
    average_processing_time_ms: float = 0.0


class DatabaseHealth(_HealthModel):
    is_connected: bool
    response_time_ms: Optional[float] = None
    active_connections: int = 0


class SystemHealthStatus(_HealthModel):
    checked_at: datetime
    overall_healthy: bool
    provider_health: List[ProviderHealth] = Field(default_factory=list)
    queue_health: QueueHealth = Field(default_factory=QueueHealth)
    database_health: DatabaseHealth
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


async def _recent_runs(db: AsyncSession) -> List[ReconciliationRun]:
    result = await db.execute(
        select(ReconciliationRun)
        .order_by(ReconciliationRun.started_at.desc())
        .limit(HISTORY_WINDOW)
    )
    return list(result.scalars().all())


async def ping_database(db: AsyncSession) -> Tuple[DatabaseHealth, Optional[str]]:
    """Run SELECT 1; returns the health block and the failure message, if any."""
    start = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database connectivity check failed: {e}")
        return DatabaseHealth(
            is_connected=False,
            response_time_ms=round((time.perf_counter() - start) * 1000, 1),
        ), str(e) or type(e).__name__
    return DatabaseHealth(
        is_connected=True,
        response_time_ms=round((time.perf_counter() - start) * 1000, 1),
        active_connections=1,
    ), None


async def get_system_health(
    db: AsyncSession,
    adapters: Sequence[ProviderAdapter],
) -> SystemHealthStatus:
    """Build the system health document. Never raises for a failing component."""
    now = utcnow()
    errors: List[str] = []
    warnings: List[str] = []

    database, db_error = await ping_database(db)
    if db_error is not None:
        errors.append(f"Database connection failed: {db_error}")

    runs: List[ReconciliationRun] = []
    if database.is_connected:
        try:
            runs = await _recent_runs(db)
        except Exception as e:
            logger.warning(f"Could not read reconciliation history: {e}")
            warnings.append(f"Reconciliation history unavailable: {e}")

    providers = []
    for adapter in adapters:
        name = adapter.provider_name
        last_success, error_count, last_error = provider_outcomes(runs, name)
        try:
            healthy = await adapter.is_healthy()
        except Exception as e:
            logger.error(f"Health check failed: {e!r}", extra={"provider": name})
            healthy = False
            last_error = str(e) or type(e).__name__

        if last_success is None:
            warnings.append(f"Provider {name} has never synced successfully")

        providers.append(ProviderHealth(
            provider_name=name,
            is_healthy=healthy,
            last_successful_sync=last_success,
            sync_latency_seconds=(
                round((now - last_success).total_seconds(), 1) if last_success else None
            ),
            last_error=last_error,
            error_count_24h=error_count,
        ))

    overall = (
        all(p.is_healthy for p in providers)
        and database.is_connected
        and not errors
    )
    return SystemHealthStatus(
        checked_at=now,
        overall_healthy=overall,
        provider_health=providers,
        queue_health=QueueHealth(),
        database_health=database,
        warnings=warnings,
        errors=errors,
    )
