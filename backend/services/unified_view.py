"""
Unified device view: Device joined to its SIM and asset links.

The projection is a left outer join

    Device ⟕ DeviceSimLink ⟕ Sim ⟕ AssetDeviceLink ⟕ Asset

so a device with several SIM or asset links fans out into several rows.
Rows are ordered by device_id, then SIM link first_seen_at, iccid, asset
link first_seen_at and asset_id (SQLite sorts NULLs first, so unlinked
rows lead each device group).
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Select, String, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models import Asset, AssetDeviceLink, Device, DeviceSimLink, Sim

logger = logging.getLogger(__name__)


@dataclass
class UnifiedViewFilter:
    """Optional, conjunctive filter over the unified view."""

    q: Optional[str] = None
    oem: Optional[str] = None
    status: Optional[str] = None
    account: Optional[str] = None
    has_asset: Optional[bool] = None
    has_sim: Optional[bool] = None
    page: int = 1
    page_size: int = field(default_factory=lambda: settings.DEFAULT_PAGE_SIZE)


@dataclass
class UnifiedDeviceRow:
    device_id: str
    oem: str
    model: Optional[str]
    imei: Optional[str]
    serial: Optional[str]
    account: Optional[str]
    status: str
    active_to: Optional[datetime]
    last_seen_at: Optional[datetime]
    last_synced_at: Optional[datetime]
    iccid: Optional[str] = None
    msisdn: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    confidence: Optional[float] = None
    source: Optional[str] = None
    link_first_seen_at: Optional[datetime] = None
    link_last_seen_at: Optional[datetime] = None
    asset_id: Optional[str] = None
    asset_name: Optional[str] = None
    match_basis: Optional[str] = None


@dataclass
class UnifiedViewPage:
    devices: List[UnifiedDeviceRow]
    total_count: int
    page: int
    page_size: int
    total_pages: int


def _base_query() -> Select:
    return (
        select(
            Device.device_id,
            Device.oem,
            Device.model,
            Device.imei,
            Device.serial,
            Device.account,
            Device.status,
            Device.active_to,
            Device.last_seen_at,
            Device.last_synced_at,
            DeviceSimLink.iccid,
            Sim.msisdn,
            Sim.tags,
            DeviceSimLink.confidence,
            DeviceSimLink.source,
            DeviceSimLink.first_seen_at.label("link_first_seen_at"),
            DeviceSimLink.last_seen_at.label("link_last_seen_at"),
            AssetDeviceLink.asset_id,
            Asset.name.label("asset_name"),
            AssetDeviceLink.match_basis,
        )
        .select_from(Device)
        .outerjoin(DeviceSimLink, DeviceSimLink.device_id == Device.device_id)
        .outerjoin(Sim, Sim.iccid == DeviceSimLink.iccid)
        .outerjoin(AssetDeviceLink, AssetDeviceLink.device_id == Device.device_id)
        .outerjoin(Asset, Asset.asset_id == AssetDeviceLink.asset_id)
    )


def _present(column):
    return and_(column.is_not(None), column != "")


def _absent(column):
    return or_(column.is_(None), column == "")


def apply_filter(query: Select, view_filter: UnifiedViewFilter) -> Select:
    """
    Add the filter's predicates (all ANDed) to a unified view query.

    ``q`` is matched as given, surrounding whitespace included; a query
    that is empty or only whitespace is ignored. Both sides are folded with
    the ``casefold`` function registered by ``database.configure_sqlite``.
    """
    if view_filter.q and view_filter.q.strip():
        term = view_filter.q.casefold()
        query = query.where(or_(*[
            func.casefold(column, type_=String).contains(term, autoescape=True)
            for column in (
                Device.device_id,
                Device.imei,
                Device.serial,
                DeviceSimLink.iccid,
                Asset.name,
                Device.account,
            )
        ]))

    if view_filter.oem:
        query = query.where(Device.oem == view_filter.oem)
    if view_filter.status:
        query = query.where(Device.status == view_filter.status)
    if view_filter.account:
        query = query.where(Device.account == view_filter.account)

    if view_filter.has_asset is not None:
        check = _present if view_filter.has_asset else _absent
        query = query.where(check(AssetDeviceLink.asset_id))
    if view_filter.has_sim is not None:
        check = _present if view_filter.has_sim else _absent
        query = query.where(check(DeviceSimLink.iccid))

    return query


def _ordered(query: Select) -> Select:
    return query.order_by(
        Device.device_id,
        DeviceSimLink.first_seen_at,
        DeviceSimLink.iccid,
        AssetDeviceLink.first_seen_at,
        AssetDeviceLink.asset_id,
    )


def _to_row(row) -> UnifiedDeviceRow:
    data = dict(row._mapping)
    data["tags"] = sorted(data.get("tags") or [])
    return UnifiedDeviceRow(**data)


async def fetch_unified_rows(
    db: AsyncSession,
    view_filter: Optional[UnifiedViewFilter] = None,
) -> List[UnifiedDeviceRow]:
    """Every matching row, unpaginated (used by report generation)."""
    query = apply_filter(_base_query(), view_filter or UnifiedViewFilter())
    result = await db.execute(_ordered(query))
    return [_to_row(row) for row in result.all()]


async def get_unified_view(db: AsyncSession, view_filter: UnifiedViewFilter) -> UnifiedViewPage:
    """
    Return one page of the unified view.

    Raises:
        ValueError: page < 1 or page_size outside 1..MAX_PAGE_SIZE
    """
    if view_filter.page < 1:
        raise ValueError("page must be >= 1")
    if not 1 <= view_filter.page_size <= settings.MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be between 1 and {settings.MAX_PAGE_SIZE}")

    query = apply_filter(_base_query(), view_filter)

    total_count = await db.scalar(select(func.count()).select_from(query.subquery())) or 0
    total_pages = math.ceil(total_count / view_filter.page_size)

    result = await db.execute(
        _ordered(query)
        .offset((view_filter.page - 1) * view_filter.page_size)
        .limit(view_filter.page_size)
    )
    devices = [_to_row(row) for row in result.all()]

    logger.debug(
        f"Unified view page {view_filter.page}/{total_pages}: "
        f"{len(devices)} of {total_count} rows"
    )
    return UnifiedViewPage(
        devices=devices,
        total_count=total_count,
        page=view_filter.page,
        page_size=view_filter.page_size,
        total_pages=total_pages,
    )
