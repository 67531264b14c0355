"""
Report generation.

Six fixed extracts, each a named filter over the unified device view
(except UnmatchedSims, which reads the SIM table directly so SIMs with no
device at all are included). Every report type has its own frozen row
class with a fixed column list; absent values render as "".

A Report row tracks the lifecycle Generating -> Completed | Failed. On
failure the Failed state is committed first, then the error propagates.
"""

import asyncio
import csv
import io
import logging
import uuid
from dataclasses import astuple, dataclass
from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple, Type, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models import DeviceSimLink, DeviceStatus, Report, ReportStatus, ReportType, Sim
from services.unified_view import UnifiedDeviceRow, UnifiedViewFilter, fetch_unified_rows
from utils.audit import audit
from utils.timestamps import format_report_timestamp, utcnow

logger = logging.getLogger(__name__)


class UnknownReportTypeError(ValueError):
    """Requested report type is not one of the six known types."""


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _confidence(value: Optional[float]) -> str:
    return "" if value is None else f"{value:g}"


class _ReportRow:
    HEADERS: ClassVar[Tuple[str, ...]] = ()

    def as_dict(self) -> Dict[str, str]:
        return dict(zip(self.HEADERS, astuple(self)))


@dataclass(frozen=True)
class ActiveLinkedDeviceRow(_ReportRow):
    HEADERS: ClassVar[Tuple[str, ...]] = (
        "ICCID", "MSISDN", "IMEI", "Serial", "OEM", "Model", "Account",
        "AssetName", "Status", "LastSeen", "ActiveTo", "Source", "Confidence",
    )

    iccid: str
    msisdn: str
    imei: str
    serial: str
    oem: str
    model: str
    account: str
    asset_name: str
    status: str
    last_seen: str
    active_to: str
    source: str
    confidence: str

    @classmethod
    def from_view(cls, row: UnifiedDeviceRow) -> "ActiveLinkedDeviceRow":
        return cls(
            iccid=_text(row.iccid),
            msisdn=_text(row.msisdn),
            imei=_text(row.imei),
            serial=_text(row.serial),
            oem=_text(row.oem),
            model=_text(row.model),
            account=_text(row.account),
            asset_name=_text(row.asset_name),
            status=_text(row.status),
            last_seen=format_report_timestamp(row.last_seen_at),
            active_to=format_report_timestamp(row.active_to),
            source=_text(row.source),
            confidence=_confidence(row.confidence),
        )


@dataclass(frozen=True)
class InactiveDeviceRow(_ReportRow):
    HEADERS: ClassVar[Tuple[str, ...]] = (
        "DeviceID", "OEM", "Model", "IMEI", "Serial", "Account", "Status",
        "ActiveTo", "LastSeen",
    )

    device_id: str
    oem: str
    model: str
    imei: str
    serial: str
    account: str
    status: str
    active_to: str
    last_seen: str

    @classmethod
    def from_view(cls, row: UnifiedDeviceRow) -> "InactiveDeviceRow":
        return cls(
            device_id=_text(row.device_id),
            oem=_text(row.oem),
            model=_text(row.model),
            imei=_text(row.imei),
            serial=_text(row.serial),
            account=_text(row.account),
            status=_text(row.status),
            active_to=format_report_timestamp(row.active_to),
            last_seen=format_report_timestamp(row.last_seen_at),
        )


@dataclass(frozen=True)
class SimButNoAssetRow(_ReportRow):
    HEADERS: ClassVar[Tuple[str, ...]] = (
        "ICCID", "MSISDN", "DeviceID", "OEM", "Model", "Account", "Status",
    )

    iccid: str
    msisdn: str
    device_id: str
    oem: str
    model: str
    account: str
    status: str

    @classmethod
    def from_view(cls, row: UnifiedDeviceRow) -> "SimButNoAssetRow":
        return cls(
            iccid=_text(row.iccid),
            msisdn=_text(row.msisdn),
            device_id=_text(row.device_id),
            oem=_text(row.oem),
            model=_text(row.model),
            account=_text(row.account),
            status=_text(row.status),
        )


@dataclass(frozen=True)
class AssetButNoSimRow(_ReportRow):
    HEADERS: ClassVar[Tuple[str, ...]] = (
        "AssetID", "AssetName", "DeviceID", "OEM", "Model", "IMEI", "Serial",
        "Account", "Status",
    )

    asset_id: str
    asset_name: str
    device_id: str
    oem: str
    model: str
    imei: str
    serial: str
    account: str
    status: str

    @classmethod
    def from_view(cls, row: UnifiedDeviceRow) -> "AssetButNoSimRow":
        return cls(
            asset_id=_text(row.asset_id),
            asset_name=_text(row.asset_name),
            device_id=_text(row.device_id),
            oem=_text(row.oem),
            model=_text(row.model),
            imei=_text(row.imei),
            serial=_text(row.serial),
            account=_text(row.account),
            status=_text(row.status),
        )


@dataclass(frozen=True)
class OrphanedDeviceRow(_ReportRow):
    HEADERS: ClassVar[Tuple[str, ...]] = (
        "DeviceID", "OEM", "Model", "IMEI", "Serial", "Account", "Status", "LastSeen",
    )

    device_id: str
    oem: str
    model: str
    imei: str
    serial: str
    account: str
    status: str
    last_seen: str

    @classmethod
    def from_view(cls, row: UnifiedDeviceRow) -> "OrphanedDeviceRow":
        return cls(
            device_id=_text(row.device_id),
            oem=_text(row.oem),
            model=_text(row.model),
            imei=_text(row.imei),
            serial=_text(row.serial),
            account=_text(row.account),
            status=_text(row.status),
            last_seen=format_report_timestamp(row.last_seen_at),
        )


@dataclass(frozen=True)
class UnmatchedSimRow(_ReportRow):
    HEADERS: ClassVar[Tuple[str, ...]] = (
        "ICCID", "MSISDN", "Carrier", "Status", "AccountID", "Description",
        "Tags", "LastSynced",
    )

    iccid: str
    msisdn: str
    carrier: str
    status: str
    account_id: str
    description: str
    tags: str
    last_synced: str

    @classmethod
    def from_sim(cls, sim: Sim) -> "UnmatchedSimRow":
        return cls(
            iccid=_text(sim.iccid),
            msisdn=_text(sim.msisdn),
            carrier=_text(sim.carrier),
            status=_text(sim.status),
            account_id=_text(sim.account_id),
            description=_text(sim.description),
            tags=", ".join(sorted(sim.tags or [])),
            last_synced=format_report_timestamp(sim.last_synced_at),
        )


@dataclass(frozen=True)
class ReportDefinition:
    report_type: ReportType
    name: str
    description: str
    row_type: Type[_ReportRow]
    view_filter: Optional[Callable[[], UnifiedViewFilter]] = None


REPORT_CATALOG: Dict[ReportType, ReportDefinition] = {
    definition.report_type: definition
    for definition in (
        ReportDefinition(
            ReportType.ACTIVE_LINKED_DEVICES,
            "Active Linked Devices",
            "Devices with both SIM and asset linkages",
            ActiveLinkedDeviceRow,
            lambda: UnifiedViewFilter(status=DeviceStatus.ACTIVE.value, has_sim=True, has_asset=True),
        ),
        ReportDefinition(
            ReportType.INACTIVE_DEVICES,
            "Inactive Devices",
            "Devices marked as inactive",
            InactiveDeviceRow,
            lambda: UnifiedViewFilter(status=DeviceStatus.INACTIVE.value),
        ),
        ReportDefinition(
            ReportType.SIM_BUT_NO_ASSET,
            "SIM but No Asset",
            "Devices linked to SIM but missing asset",
            SimButNoAssetRow,
            lambda: UnifiedViewFilter(has_sim=True, has_asset=False),
        ),
        ReportDefinition(
            ReportType.ASSET_BUT_NO_SIM,
            "Asset but No SIM",
            "Devices linked to asset but missing SIM",
            AssetButNoSimRow,
            lambda: UnifiedViewFilter(has_asset=True, has_sim=False),
        ),
        ReportDefinition(
            ReportType.NO_LINKAGE_ORPHANED,
            "No Linkage (Orphaned)",
            "Devices without SIM or asset linkages",
            OrphanedDeviceRow,
            lambda: UnifiedViewFilter(has_sim=False, has_asset=False),
        ),
        ReportDefinition(
            ReportType.UNMATCHED_SIMS,
            "Unmatched SIMs",
            "SIMs not linked to any device",
            UnmatchedSimRow,
        ),
    )
}


def parse_report_type(value: Union[str, ReportType]) -> ReportType:
    """Resolve a report type name; raises UnknownReportTypeError."""
    if isinstance(value, ReportType):
        return value
    try:
        return ReportType(value)
    except ValueError:
        raise UnknownReportTypeError(f"Unknown report type: {value}") from None


def report_types() -> List[Dict[str, str]]:
    return [
        {"value": d.report_type.value, "name": d.name, "description": d.description}
        for d in REPORT_CATALOG.values()
    ]


async def build_report_rows(db: AsyncSession, report_type: ReportType) -> List[_ReportRow]:
    definition = REPORT_CATALOG[report_type]
    if definition.view_filter is None:
        result = await db.execute(
            select(Sim)
            .where(Sim.iccid.not_in(select(DeviceSimLink.iccid)))
            .order_by(Sim.iccid)
        )
        return [UnmatchedSimRow.from_sim(sim) for sim in result.scalars().all()]

    rows = await fetch_unified_rows(db, definition.view_filter())
    return [definition.row_type.from_view(row) for row in rows]


def render_csv(headers: Tuple[str, ...], rows: List[_ReportRow]) -> bytes:
    """Serialize rows to CSV; the header line is written even for an empty report."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(headers))
    writer.writeheader()
    for row in rows:
        writer.writerow(row.as_dict())
    return buffer.getvalue().encode("utf-8")


def _report_path(report: Report) -> Path:
    stamp = report.generated_at.strftime("%Y%m%d_%H%M%S")
    return Path(settings.REPORTS_DIR) / f"{report.type}_{stamp}_{report.report_id}.csv"


def _write_report_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


async def generate_report(db: AsyncSession, report_type: Union[str, ReportType]) -> Report:
    """
    Generate one report and persist its lifecycle.

    Raises:
        UnknownReportTypeError: before anything is written
        Exception: whatever broke generation, after the Failed state is stored
    """
    report_type = parse_report_type(report_type)

    report_id = str(uuid.uuid4())
    report = Report(
        report_id=report_id,
        type=report_type.value,
        status=ReportStatus.GENERATING.value,
        generated_at=utcnow(),
    )
    db.add(report)
    await db.commit()
    logger.info(f"Generating {report_type.value} report {report_id}")

    try:
        rows = await build_report_rows(db, report_type)
        content = render_csv(REPORT_CATALOG[report_type].row_type.HEADERS, rows)
        path = _report_path(report)
        await asyncio.to_thread(_write_report_file, path, content)

        report.status = ReportStatus.COMPLETED.value
        report.path = str(path)
        report.row_count = len(rows)
        report.file_size_bytes = len(content)
        await db.commit()
    except Exception as e:
        logger.error(f"Failed to generate {report_type.value} report {report_id}: {e}", exc_info=True)
        await _mark_failed(db, report_id, str(e) or type(e).__name__)
        audit.log_report(report_id, report_type.value, 0, 0, error_message=str(e) or type(e).__name__)
        raise

    logger.info(f"Report {report_id} completed: {report.row_count} rows, {report.file_size_bytes} bytes")
    audit.log_report(report_id, report_type.value, report.row_count, report.file_size_bytes)
    return report


async def _mark_failed(db: AsyncSession, report_id: str, message: str) -> None:
    try:
        await db.rollback()
        report = await db.get(Report, report_id)
        if report is None:
            return
        report.status = ReportStatus.FAILED.value
        report.error = message
        await db.commit()
    except Exception:
        logger.exception(f"Could not record failure of report {report_id}")


async def list_reports(db: AsyncSession, limit: int = 50) -> List[Report]:
    result = await db.execute(
        select(Report).order_by(Report.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def get_report(db: AsyncSession, report_id: str) -> Optional[Report]:
    return await db.get(Report, report_id)


def downloadable_path(report: Report) -> Optional[Path]:
    """File behind a completed report, or None if it cannot be served."""
    if report.status != ReportStatus.COMPLETED.value or not report.path:
        return None
    path = Path(report.path)
    return path if path.is_file() else None
