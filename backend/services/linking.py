"""
Explicit link management between devices, SIMs and assets.

These operations are the manual override path: they run independently of
reconciliation, are idempotent on the composite key, and report failure as
``False`` instead of raising. Referential integrity is left to the
database; a foreign-key or CHECK violation is the failure signal.

The ``upsert_*`` helpers are shared with the reconciliation engine, which
needs to know whether a link was created or refreshed.
"""

import logging
from typing import Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import AssetDeviceLink, DeviceSimLink, LinkSource, MatchBasis
from utils.audit import audit
from utils.timestamps import advance, utcnow

logger = logging.getLogger(__name__)

LINK_CREATED = "created"
LINK_UPDATED = "updated"


def _enum_value(value: Union[str, LinkSource, MatchBasis]) -> str:
    return value.value if hasattr(value, "value") else str(value)


async def upsert_device_sim_link(
    db: AsyncSession,
    device_id: str,
    iccid: str,
    source: Union[str, LinkSource],
    confidence: float,
) -> str:
    """
    Create or refresh a device-SIM link, commit, and audit it.

    An existing link keeps its first_seen_at; source and confidence are
    overwritten and last_seen_at advances.

    Returns:
        "created" or "updated"

    Raises:
        SQLAlchemyError: the write failed (session already rolled back)
    """
    source = _enum_value(source)
    try:
        link = await db.get(DeviceSimLink, (device_id, iccid))
        if link is None:
            now = utcnow()
            db.add(DeviceSimLink(
                device_id=device_id,
                iccid=iccid,
                source=source,
                confidence=confidence,
                first_seen_at=now,
                last_seen_at=now,
            ))
            action = LINK_CREATED
        else:
            link.source = source
            link.confidence = confidence
            link.last_seen_at = advance(link.last_seen_at)
            action = LINK_UPDATED
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise

    logger.info(f"Device {device_id} linked to SIM {iccid} ({action})")
    audit.log_event(
        action="link_device_sim",
        subject_type="device",
        subject_id=device_id,
        payload={
            "iccid": iccid,
            "source": source,
            "confidence": confidence,
            "action": action,
        },
    )
    return action


async def upsert_asset_device_link(
    db: AsyncSession,
    asset_id: str,
    device_id: str,
    basis: Union[str, MatchBasis],
) -> str:
    """Create or refresh an asset-device link, commit, and audit it. Returns "created" or "updated"."""
    basis = _enum_value(basis)
    try:
        link = await db.get(AssetDeviceLink, (asset_id, device_id))
        if link is None:
            now = utcnow()
            db.add(AssetDeviceLink(
                asset_id=asset_id,
                device_id=device_id,
                match_basis=basis,
                first_seen_at=now,
                last_seen_at=now,
            ))
            action = LINK_CREATED
        else:
            link.match_basis = basis
            link.last_seen_at = advance(link.last_seen_at)
            action = LINK_UPDATED
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise

    logger.info(f"Asset {asset_id} linked to device {device_id} ({action})")
    audit.log_event(
        action="link_asset_device",
        subject_type="device",
        subject_id=device_id,
        payload={
            "asset_id": asset_id,
            "basis": basis,
            "action": action,
        },
    )
    return action


async def link_device_to_sim(
    db: AsyncSession,
    device_id: str,
    iccid: str,
    source: Union[str, LinkSource],
    confidence: float,
) -> bool:
    """Link a device to a SIM. Returns False if the write was rejected."""
    try:
        await upsert_device_sim_link(db, device_id, iccid, source, confidence)
    except SQLAlchemyError as e:
        logger.warning(f"Failed to link device {device_id} to SIM {iccid}: {e}")
        return False
    return True


async def link_asset_to_device(
    db: AsyncSession,
    asset_id: str,
    device_id: str,
    basis: Union[str, MatchBasis],
) -> bool:
    """Link an asset to a device. Returns False if the write was rejected."""
    try:
        await upsert_asset_device_link(db, asset_id, device_id, basis)
    except SQLAlchemyError as e:
        logger.warning(f"Failed to link asset {asset_id} to device {device_id}: {e}")
        return False
    return True


async def unlink_device_from_sim(db: AsyncSession, device_id: str, iccid: str) -> bool:
    """Delete a device-SIM link. Returns False when no such link exists."""
    try:
        link = await db.get(DeviceSimLink, (device_id, iccid))
        if link is None:
            return False
        await db.delete(link)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(f"Failed to unlink device {device_id} from SIM {iccid}: {e}")
        return False

    audit.log_event(
        action="unlink_device_sim",
        subject_type="device",
        subject_id=device_id,
        payload={"iccid": iccid},
    )
    return True


async def unlink_asset_from_device(db: AsyncSession, asset_id: str, device_id: str) -> bool:
    """Delete an asset-device link. Returns False when no such link exists."""
    try:
        link = await db.get(AssetDeviceLink, (asset_id, device_id))
        if link is None:
            return False
        await db.delete(link)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(f"Failed to unlink asset {asset_id} from device {device_id}: {e}")
        return False

    audit.log_event(
        action="unlink_asset_device",
        subject_type="device",
        subject_id=device_id,
        payload={"asset_id": asset_id},
    )
    return True
