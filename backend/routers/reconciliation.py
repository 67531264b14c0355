"""
API endpoints for reconciliation runs and pipeline health.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from adapters import ProviderAdapter, get_provider_adapters
from database import get_db
from schemas import (
    ReconcileResponse,
    ReconciliationResultResponse,
    ReconciliationRunResponse,
)
from services import SystemHealthStatus, get_system_health, list_runs, run_reconciliation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reconcile", tags=["reconciliation"])


@router.post(
    "/run",
    response_model=ReconcileResponse,
    responses={400: {"description": "Run failed; body carries error and the partial result"}},
)
async def run(
    force_refresh: bool = Query(False, alias="forceRefresh"),
    db: AsyncSession = Depends(get_db),
    adapters: List[ProviderAdapter] = Depends(get_provider_adapters),
):
    """
    Run one reconciliation across every registered provider.

    Per-provider fetch failures are listed in ``result.errors`` and do not
    fail the run. ``forceRefresh`` is recorded but every run re-processes
    everything.
    """
    try:
        logger.info(f"Received reconciliation request (forceRefresh={force_refresh})")
        result = await run_reconciliation(db, adapters, force_refresh=force_refresh)
    except Exception as e:
        logger.error(f"Reconciliation request failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    body = ReconciliationResultResponse.model_validate(result)
    if not result.is_success:
        return JSONResponse(
            status_code=400,
            content={
                "message": "Reconciliation failed",
                "error": result.error,
                "result": body.model_dump(mode="json", by_alias=True),
            },
        )
    return ReconcileResponse(message="Reconciliation completed successfully", result=body)


@router.get("/health", response_model=SystemHealthStatus)
async def health(
    db: AsyncSession = Depends(get_db),
    adapters: List[ProviderAdapter] = Depends(get_provider_adapters),
):
    """Provider reachability and sync history, store latency, queue summary."""
    try:
        return await get_system_health(db, adapters)
    except Exception as e:
        logger.error(f"System health check failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/runs", response_model=List[ReconciliationRunResponse])
async def runs(
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Recent reconciliation runs, newest first."""
    history = await list_runs(db, limit=limit)
    return [ReconciliationRunResponse.model_validate(run) for run in history]
