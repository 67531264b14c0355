"""
API endpoints for the unified device view and manual link management.

Link/unlink endpoints answer 400 when the linking service reports failure
(unknown device/SIM/asset, rejected write, or no such link to remove).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from models import DeviceOem, DeviceStatus
from schemas import (
    LinkAssetDeviceRequest,
    LinkDeviceSimRequest,
    MessageResponse,
    UnifiedDeviceViewResponse,
    UnlinkAssetDeviceRequest,
    UnlinkDeviceSimRequest,
)
from services import (
    UnifiedViewFilter,
    get_unified_view,
    link_asset_to_device,
    link_device_to_sim,
    unlink_asset_from_device,
    unlink_device_from_sim,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/devices", tags=["devices"])


@router.get("", response_model=UnifiedDeviceViewResponse)
async def list_devices(
    q: Optional[str] = Query(None, max_length=255, description="Substring of device id, IMEI, serial, ICCID, asset name or account"),
    oem: Optional[DeviceOem] = Query(None),
    status: Optional[DeviceStatus] = Query(None),
    account: Optional[str] = Query(None, max_length=255),
    has_asset: Optional[bool] = Query(None, alias="hasAsset"),
    has_sim: Optional[bool] = Query(None, alias="hasSim"),
    page: int = Query(1, ge=1),
    page_size: int = Query(
        settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, alias="pageSize"
    ),
    db: AsyncSession = Depends(get_db),
):
    """
    Paginated unified view of devices with their SIM and asset links.

    All filters are optional and combined with AND. A device with several
    links appears once per link combination. A page past the end is empty.
    """
    view_filter = UnifiedViewFilter(
        q=q,
        oem=oem.value if oem else None,
        status=status.value if status else None,
        account=account,
        has_asset=has_asset,
        has_sim=has_sim,
        page=page,
        page_size=page_size,
    )
    try:
        view = await get_unified_view(db, view_filter)
    except Exception as e:
        logger.error(f"Failed to build unified device view: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")
    return UnifiedDeviceViewResponse.model_validate(view)


@router.post("/link-sim", response_model=MessageResponse)
async def link_sim(
    request: LinkDeviceSimRequest,
    db: AsyncSession = Depends(get_db),
):
    """Create or refresh the link between a device and a SIM."""
    try:
        success = await link_device_to_sim(
            db, request.device_id, request.iccid, request.source, request.confidence
        )
    except Exception as e:
        logger.error(f"Failed to link device {request.device_id} to SIM {request.iccid}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    if not success:
        raise HTTPException(status_code=400, detail="Failed to link device to SIM")
    return {"message": "Device linked to SIM successfully"}


@router.post("/link-asset", response_model=MessageResponse)
async def link_asset(
    request: LinkAssetDeviceRequest,
    db: AsyncSession = Depends(get_db),
):
    """Create or refresh the link between an asset and a device."""
    try:
        success = await link_asset_to_device(
            db, request.asset_id, request.device_id, request.match_basis
        )
    except Exception as e:
        logger.error(f"Failed to link asset {request.asset_id} to device {request.device_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    if not success:
        raise HTTPException(status_code=400, detail="Failed to link device to asset")
    return {"message": "Device linked to asset successfully"}


@router.delete("/unlink-sim", response_model=MessageResponse)
async def unlink_sim(
    request: UnlinkDeviceSimRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        success = await unlink_device_from_sim(db, request.device_id, request.iccid)
    except Exception as e:
        logger.error(f"Failed to unlink device {request.device_id} from SIM {request.iccid}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    if not success:
        raise HTTPException(status_code=400, detail="Failed to unlink device from SIM")
    return {"message": "Device unlinked from SIM successfully"}


@router.delete("/unlink-asset", response_model=MessageResponse)
async def unlink_asset(
    request: UnlinkAssetDeviceRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        success = await unlink_asset_from_device(db, request.asset_id, request.device_id)
    except Exception as e:
        logger.error(f"Failed to unlink device {request.device_id} from asset {request.asset_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    if not success:
        raise HTTPException(status_code=400, detail="Failed to unlink device from asset")
    return {"message": "Device unlinked from asset successfully"}
