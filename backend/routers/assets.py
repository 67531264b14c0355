"""
API endpoints for asset administration.

Assets are maintained here, outside reconciliation; the engine only reads
them to auto-link devices by serial.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import Asset
from schemas import AssetResponse, AssetUpsert, MessageResponse
from utils.audit import audit
from utils.timestamps import advance, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assets", tags=["assets"])


@router.get("", response_model=List[AssetResponse])
async def list_assets(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Asset).order_by(Asset.asset_id))
    return [AssetResponse.model_validate(asset) for asset in result.scalars().all()]


@router.put("/{asset_id}", response_model=AssetResponse)
async def upsert_asset(
    asset: AssetUpsert,
    asset_id: str = Path(..., min_length=1, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    """Create an asset or overwrite all of its fields."""
    db_asset = await db.get(Asset, asset_id)
    now = utcnow()
    if db_asset is None:
        db_asset = Asset(asset_id=asset_id, created_at=now, updated_at=now)
        db.add(db_asset)
        operation = "created"
    else:
        db_asset.updated_at = advance(db_asset.updated_at)
        operation = "updated"

    db_asset.name = asset.name
    db_asset.external_ref = asset.external_ref
    db_asset.serial_match_hint = asset.serial_match_hint
    await db.commit()

    logger.info(f"Asset {asset_id} {operation}")
    audit.log_asset_change(
        operation="upserted",
        asset_id=asset_id,
        changes={"action": operation, **asset.model_dump()},
    )
    return AssetResponse.model_validate(db_asset)


@router.delete("/{asset_id}", response_model=MessageResponse)
async def delete_asset(asset_id: str, db: AsyncSession = Depends(get_db)):
    """Delete an asset; its device links are removed with it."""
    db_asset = await db.get(Asset, asset_id)
    if db_asset is None:
        raise HTTPException(status_code=404, detail="Asset not found")

    await db.delete(db_asset)
    await db.commit()

    audit.log_asset_change(operation="deleted", asset_id=asset_id)
    return {"message": f"Asset {asset_id} deleted"}
