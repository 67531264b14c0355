"""
Reconciliation engine.

One run pulls a snapshot from every registered provider adapter and folds
it into the entity store:

1. Fetch inventories (concurrently or in order, each bounded by a timeout)
2. Upsert devices by device_id, then refresh liveness from heartbeats
3. Upsert SIMs by iccid
4. Auto-link every stored device to the asset whose serial_match_hint
   equals its serial
5. Audit the whole store for duplicate ICCIDs, unmatched SIMs, orphans
6. Finalise the result

A provider failure is recorded and the run carries on. Any other exception
in steps 2-5 fails the run. Each upsert commits on its own, so whatever
was written before a failure or cancellation stays written.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.base import DeviceRecord, ProviderAdapter, ProviderInventory, SimRecord
from config import settings
from models import (
    Asset,
    Device,
    DeviceSimLink,
    DeviceStatus,
    MatchBasis,
    ReconciliationRun,
    Sim,
)
from services.linking import LINK_CREATED, upsert_asset_device_link
from utils.audit import audit
from utils.logging_utils import LogTimer, log_step
from utils.tagging import normalize_tags
from utils.timestamps import advance, to_naive_utc, utcnow

logger = logging.getLogger(__name__)

TOTAL_STEPS = 6


class ReconciliationCancelled(Exception):
    """Raised at a stage boundary once the run's cancel event is set."""


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation run."""

    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    is_success: bool = False
    error: Optional[str] = None
    force_refresh: bool = False

    devices_processed: int = 0
    sims_processed: int = 0
    new_links_created: int = 0
    links_updated: int = 0
    duplicate_iccids_found: int = 0
    unmatched_sims: int = 0
    orphaned_devices: int = 0

    errors: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)

    providers_succeeded: List[str] = field(default_factory=list)
    provider_errors: Dict[str, str] = field(default_factory=dict)


@dataclass
class _FetchOutcome:
    adapter: ProviderAdapter
    inventory: Optional[ProviderInventory] = None
    error: Optional[str] = None


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class ReconciliationEngine:
    """
    Runs reconciliation against one database session.

    Runs are not re-entrant: callers must not start two runs against the
    same store at once.
    """

    def __init__(
        self,
        db: AsyncSession,
        adapters: Sequence[ProviderAdapter],
        timeout: Optional[float] = None,
        concurrent: Optional[bool] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.db = db
        self.adapters = list(adapters)
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        self.concurrent = (
            concurrent if concurrent is not None else settings.PROVIDER_FETCH_CONCURRENTLY
        )
        self.cancel_event = cancel_event

        self._records_skipped = 0
        self._heartbeats_applied = 0

    # ── Public API ───────────────────────────────────────────────────

    async def run(self, force_refresh: bool = False) -> ReconciliationResult:
        """
        Execute one full run.

        ``force_refresh`` is recorded on the result and in run history; every
        run re-fetches and re-processes everything regardless.

        Raises:
            ReconciliationCancelled: the cancel event was set mid-run
        """
        result = ReconciliationResult(force_refresh=force_refresh)
        start = time.perf_counter()
        self._records_skipped = 0
        self._heartbeats_applied = 0

        logger.info(
            f"Starting reconciliation {result.run_id} "
            f"({len(self.adapters)} providers, force_refresh={force_refresh})"
        )

        try:
            with log_step(logger, 1, TOTAL_STEPS, "Fetching provider inventories"):
                outcomes = await self._fetch_inventories(result)
            self._check_cancelled("device upsert")

            succeeded = [o for o in outcomes if o.inventory is not None]
            all_devices = [d for o in succeeded for d in o.inventory.devices]
            all_sims = [s for o in succeeded for s in o.inventory.sims]

            with log_step(logger, 2, TOTAL_STEPS, f"Upserting {len(all_devices)} device records"):
                result.devices_processed = len(all_devices)
                for record in all_devices:
                    await self._upsert_device(record)
                await self._apply_heartbeats(succeeded, result)
            self._check_cancelled("SIM upsert")

            with log_step(logger, 3, TOTAL_STEPS, f"Upserting {len(all_sims)} SIM records"):
                result.sims_processed = len(all_sims)
                for record in all_sims:
                    await self._upsert_sim(record)
            self._check_cancelled("asset linking")

            with log_step(logger, 4, TOTAL_STEPS, "Linking devices to assets by serial"):
                await self._link_assets_by_serial(result)
            self._check_cancelled("consistency audit")

            with log_step(logger, 5, TOTAL_STEPS, "Auditing store consistency"):
                await self._audit_consistency(result)

            with log_step(logger, 6, TOTAL_STEPS, "Finalising"):
                result.completed_at = utcnow()
                result.is_success = True

            logger.info(
                f"Reconciliation {result.run_id} completed: "
                f"{result.devices_processed} devices, {result.sims_processed} SIMs, "
                f"{result.new_links_created} new links, {len(result.errors)} errors"
            )
        except ReconciliationCancelled:
            logger.warning(f"Reconciliation {result.run_id} cancelled; committed upserts are kept")
            raise
        except Exception as e:
            logger.error(f"Reconciliation {result.run_id} failed: {e}", exc_info=True)
            await self.db.rollback()
            result.error = _describe(e)
            result.is_success = False

        result.metrics = {
            "durationMs": round((time.perf_counter() - start) * 1000, 1),
            "providersQueried": len(self.adapters),
            "providersFailed": len(result.provider_errors),
            "heartbeatsApplied": self._heartbeats_applied,
            "recordsSkipped": self._records_skipped,
        }

        await self._record_run(result)
        audit.log_reconciliation(
            run_id=result.run_id,
            is_success=result.is_success,
            devices_processed=result.devices_processed,
            sims_processed=result.sims_processed,
            error_count=len(result.errors),
            force_refresh=force_refresh,
        )
        return result

    # ── Stage 1: fetch ───────────────────────────────────────────────

    def _check_cancelled(self, next_stage: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ReconciliationCancelled(f"Cancelled before {next_stage}")

    async def _fetch_one(self, adapter: ProviderAdapter) -> _FetchOutcome:
        name = adapter.provider_name
        try:
            with LogTimer(logger, "Fetching inventory", provider=name) as timer:
                inventory = await asyncio.wait_for(adapter.fetch_inventory(), self.timeout)
                timer.set_record_count(len(inventory.devices) + len(inventory.sims))
        except asyncio.TimeoutError:
            return _FetchOutcome(adapter, error=f"timed out after {self.timeout:g}s")
        except Exception as e:
            return _FetchOutcome(adapter, error=_describe(e))
        return _FetchOutcome(adapter, inventory=inventory)

    async def _fetch_inventories(self, result: ReconciliationResult) -> List[_FetchOutcome]:
        if self.concurrent:
            outcomes = list(await asyncio.gather(*(self._fetch_one(a) for a in self.adapters)))
        else:
            outcomes = [await self._fetch_one(a) for a in self.adapters]

        # Registration order is preserved so later providers win on conflicts
        for outcome in outcomes:
            name = outcome.adapter.provider_name
            if outcome.error is not None:
                result.provider_errors[name] = outcome.error
                result.errors.append(f"Provider {name}: {outcome.error}")
                continue
            result.providers_succeeded.append(name)
            if outcome.inventory.error:
                result.errors.append(f"Provider {name}: {outcome.inventory.error}")
            if not outcome.inventory.is_complete:
                logger.warning("Provider returned a partial inventory", extra={"provider": name})
        return outcomes

    # ── Stage 2: devices ─────────────────────────────────────────────

    async def _upsert_device(self, record: DeviceRecord) -> None:
        if not record.device_id:
            self._records_skipped += 1
            logger.warning(f"Skipping device record without device_id: {record!r}")
            return

        now = utcnow()
        device = await self.db.get(Device, record.device_id)
        if device is None:
            device = Device(device_id=record.device_id, created_at=now, updated_at=now)
            self.db.add(device)
        else:
            device.updated_at = advance(device.updated_at)

        device.oem = record.oem.value
        device.model = record.model
        device.imei = record.imei
        device.serial = record.serial
        device.account = record.account
        device.status = (DeviceStatus.ACTIVE if record.is_active else DeviceStatus.INACTIVE).value
        device.active_to = to_naive_utc(record.active_to)
        device.provider_ref = record.provider_ref
        device.last_synced_at = now
        await self.db.commit()

    async def _apply_heartbeats(
        self,
        outcomes: List[_FetchOutcome],
        result: ReconciliationResult,
    ) -> None:
        for outcome in outcomes:
            adapter = outcome.adapter
            device_ids = [d.device_id for d in outcome.inventory.devices if d.device_id]
            if not device_ids:
                continue
            try:
                heartbeats = await asyncio.wait_for(
                    adapter.fetch_last_seen(device_ids), self.timeout
                )
            except asyncio.TimeoutError:
                result.errors.append(
                    f"Provider {adapter.provider_name} heartbeats: timed out after {self.timeout:g}s"
                )
                continue
            except Exception as e:
                logger.warning(
                    f"Heartbeat fetch failed: {e!r}",
                    extra={"provider": adapter.provider_name},
                )
                result.errors.append(f"Provider {adapter.provider_name} heartbeats: {_describe(e)}")
                continue

            applied = 0
            for heartbeat in heartbeats:
                device = await self.db.get(Device, heartbeat.device_id)
                if device is None:
                    continue
                seen_at = to_naive_utc(heartbeat.last_seen_at)
                if device.last_seen_at is None or seen_at > device.last_seen_at:
                    device.last_seen_at = seen_at
                    applied += 1
            await self.db.commit()
            self._heartbeats_applied += applied

    # ── Stage 3: SIMs ────────────────────────────────────────────────

    async def _upsert_sim(self, record: SimRecord) -> None:
        if not record.iccid:
            self._records_skipped += 1
            logger.warning(f"Skipping SIM record without iccid: {record!r}")
            return

        now = utcnow()
        sim = await self.db.get(Sim, record.iccid)
        if sim is None:
            sim = Sim(iccid=record.iccid, created_at=now, updated_at=now)
            self.db.add(sim)
        else:
            sim.updated_at = advance(sim.updated_at)

        sim.msisdn = record.msisdn
        sim.status = record.status or ""
        sim.carrier = record.carrier
        sim.account_id = record.account_id
        sim.description = record.description
        sim.tags = normalize_tags(record.tags)
        sim.last_synced_at = now
        await self.db.commit()

    # ── Stage 4: asset auto-linking ──────────────────────────────────

    async def _link_assets_by_serial(self, result: ReconciliationResult) -> None:
        # Every stored device, not only those in this run's snapshots
        stored = await self.db.execute(
            select(Device.device_id, Device.serial)
            .where(Device.serial.is_not(None), Device.serial != "")
            .order_by(Device.device_id)
        )
        for device_id, serial in stored.all():
            asset_id = await self.db.scalar(
                select(Asset.asset_id)
                .where(Asset.serial_match_hint == serial)
                .order_by(Asset.asset_id)
                .limit(1)
            )
            if asset_id is None:
                continue
            try:
                action = await upsert_asset_device_link(
                    self.db, asset_id, device_id, MatchBasis.SERIAL
                )
            except SQLAlchemyError as e:
                logger.warning(f"Auto-link of asset {asset_id} to device {device_id} failed: {e}")
                result.errors.append(f"Asset link {asset_id} -> {device_id}: {_describe(e)}")
                continue
            if action == LINK_CREATED:
                result.new_links_created += 1
            else:
                result.links_updated += 1

    # ── Stage 5: consistency audit ───────────────────────────────────

    async def _audit_consistency(self, result: ReconciliationResult) -> None:
        duplicates = (
            select(DeviceSimLink.iccid)
            .group_by(DeviceSimLink.iccid)
            .having(func.count(func.distinct(DeviceSimLink.device_id)) > 1)
            .subquery()
        )
        result.duplicate_iccids_found = (
            await self.db.scalar(select(func.count()).select_from(duplicates)) or 0
        )

        result.unmatched_sims = await self.db.scalar(
            select(func.count())
            .select_from(Sim)
            .where(Sim.iccid.not_in(select(DeviceSimLink.iccid)))
        ) or 0

        result.orphaned_devices = await self.db.scalar(
            select(func.count())
            .select_from(Device)
            .where(Device.device_id.not_in(select(DeviceSimLink.device_id)))
        ) or 0

        if result.duplicate_iccids_found:
            logger.warning(f"{result.duplicate_iccids_found} ICCIDs are linked to more than one device")

    # ── History ──────────────────────────────────────────────────────

    async def _record_run(self, result: ReconciliationResult) -> None:
        """Persist run history; a failure here never changes the returned result."""
        try:
            self.db.add(ReconciliationRun(
                run_id=result.run_id,
                started_at=result.started_at,
                completed_at=result.completed_at,
                is_success=result.is_success,
                force_refresh=result.force_refresh,
                error=result.error,
                devices_processed=result.devices_processed,
                sims_processed=result.sims_processed,
                new_links_created=result.new_links_created,
                links_updated=result.links_updated,
                duplicate_iccids_found=result.duplicate_iccids_found,
                unmatched_sims=result.unmatched_sims,
                orphaned_devices=result.orphaned_devices,
                providers_succeeded=list(result.providers_succeeded),
                provider_errors=dict(result.provider_errors),
                errors=list(result.errors),
                metrics=dict(result.metrics),
            ))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to record reconciliation run {result.run_id}: {e}")


async def run_reconciliation(
    db: AsyncSession,
    adapters: Sequence[ProviderAdapter],
    force_refresh: bool = False,
    cancel_event: Optional[asyncio.Event] = None,
) -> ReconciliationResult:
    """Convenience wrapper running one reconciliation with settings defaults."""
    engine = ReconciliationEngine(db, adapters, cancel_event=cancel_event)
    return await engine.run(force_refresh=force_refresh)


async def list_runs(db: AsyncSession, limit: int = 20) -> List[ReconciliationRun]:
    """Recent run history, newest first."""
    result = await db.execute(
        select(ReconciliationRun)
        .order_by(ReconciliationRun.started_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def provider_outcomes(runs: Sequence[ReconciliationRun], provider_name: str) -> Tuple[Optional[datetime], int, Optional[str]]:
    """
    Summarise one provider across run history (newest first).

    Returns (last successful sync, errors in the last 24h, latest error).
    """
    last_success = None
    error_count = 0
    last_error = None
    cutoff = utcnow() - timedelta(hours=24)
    for run in runs:
        errors = run.provider_errors or {}
        if provider_name in errors:
            if last_error is None:
                last_error = errors[provider_name]
            if run.started_at >= cutoff:
                error_count += 1
        elif (
            last_success is None
            and run.completed_at is not None
            and provider_name in (run.providers_succeeded or [])
        ):
            last_success = run.completed_at
    return last_success, error_count, last_error
