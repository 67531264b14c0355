"""
Tests for report generation: row content per type, CSV layout and lifecycle.
"""

import asyncio
import csv
import json
import logging
import re
from datetime import datetime
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from factories import make_asset, make_device, make_sim, make_sim_link
from models import AssetDeviceLink, Report, ReportStatus, ReportType
from services.reports import (
    REPORT_CATALOG,
    UnknownReportTypeError,
    downloadable_path,
    generate_report,
    list_reports,
    parse_report_type,
    render_csv,
    report_types,
)


def read_csv(path):
    return list(csv.reader(Path(path).read_bytes().decode("utf-8").splitlines()))


@pytest_asyncio.fixture
async def fleet(db_session):
    """
    D1: active, SIM + asset      D3: active, SIM only
    D2: inactive, no links       D4: active, asset only
    I9: SIM with no device
    """
    db_session.add_all([
        make_device(
            "D1",
            imei="356789012345678",
            serial="SN1",
            model="FMC130",
            account="Fleet A",
            last_seen_at=datetime(2024, 3, 5, 14, 30, 0),
        ),
        make_device("D2", status="Inactive", oem="DigitalMatter", active_to=datetime(2023, 12, 31)),
        make_device("D3"),
        make_device("D4"),
        make_sim("I1", msisdn="+447700900001"),
        make_sim("I3"),
        make_sim(
            "I9",
            msisdn="+447700900009",
            carrier="Vodafone",
            status="suspended",
            account_id="ACC-1",
            description="Spare",
            tags=["spare", "batch-2"],
            last_synced_at=datetime(2024, 2, 1, 8, 0, 0),
        ),
        make_asset("A1", "Truck 7"),
        make_asset("A4", "Trailer 2"),
    ])
    await db_session.commit()
    db_session.add_all([
        make_sim_link("D1", "I1", confidence=0.85),
        make_sim_link("D3", "I3"),
        AssetDeviceLink(
            asset_id="A1", device_id="D1", match_basis="Serial",
            first_seen_at=datetime(2024, 1, 1), last_seen_at=datetime(2024, 1, 1),
        ),
        AssetDeviceLink(
            asset_id="A4", device_id="D4", match_basis="Manual",
            first_seen_at=datetime(2024, 1, 1), last_seen_at=datetime(2024, 1, 1),
        ),
    ])
    await db_session.commit()
    return db_session


class TestReportRows:

    @pytest.mark.asyncio
    async def test_active_linked_devices(self, fleet):
        report = await generate_report(fleet, ReportType.ACTIVE_LINKED_DEVICES)

        rows = read_csv(report.path)
        assert rows[0] == [
            "ICCID", "MSISDN", "IMEI", "Serial", "OEM", "Model", "Account",
            "AssetName", "Status", "LastSeen", "ActiveTo", "Source", "Confidence",
        ]
        assert rows[1:] == [[
            "I1", "+447700900001", "356789012345678", "SN1", "Teltonika", "FMC130",
            "Fleet A", "Truck 7", "Active", "2024-03-05 14:30:00", "", "Iccid", "0.85",
        ]]
        assert report.row_count == 1

    @pytest.mark.asyncio
    async def test_inactive_devices(self, fleet):
        report = await generate_report(fleet, "InactiveDevices")

        rows = read_csv(report.path)
        assert rows[0][0] == "DeviceID"
        assert rows[1:] == [[
            "D2", "DigitalMatter", "", "", "", "", "Inactive", "2023-12-31 00:00:00", "",
        ]]

    @pytest.mark.asyncio
    async def test_sim_but_no_asset(self, fleet):
        report = await generate_report(fleet, ReportType.SIM_BUT_NO_ASSET)

        rows = read_csv(report.path)
        assert rows[0] == ["ICCID", "MSISDN", "DeviceID", "OEM", "Model", "Account", "Status"]
        assert [r[2] for r in rows[1:]] == ["D3"]

    @pytest.mark.asyncio
    async def test_asset_but_no_sim(self, fleet):
        report = await generate_report(fleet, ReportType.ASSET_BUT_NO_SIM)

        rows = read_csv(report.path)
        assert rows[1:] == [["A4", "Trailer 2", "D4", "Teltonika", "", "", "", "", "Active"]]

    @pytest.mark.asyncio
    async def test_orphaned_devices(self, fleet):
        report = await generate_report(fleet, ReportType.NO_LINKAGE_ORPHANED)

        rows = read_csv(report.path)
        assert [r[0] for r in rows[1:]] == ["D2"]

    @pytest.mark.asyncio
    async def test_unmatched_sims_include_sims_without_any_device(self, fleet):
        report = await generate_report(fleet, ReportType.UNMATCHED_SIMS)

        rows = read_csv(report.path)
        assert rows[0] == [
            "ICCID", "MSISDN", "Carrier", "Status", "AccountID", "Description",
            "Tags", "LastSynced",
        ]
        assert rows[1:] == [[
            "I9", "+447700900009", "Vodafone", "suspended", "ACC-1", "Spare",
            "batch-2, spare", "2024-02-01 08:00:00",
        ]]

    @pytest.mark.asyncio
    async def test_empty_report_has_header_only(self, db_session):
        report = await generate_report(db_session, ReportType.INACTIVE_DEVICES)

        rows = read_csv(report.path)
        assert len(rows) == 1
        assert report.row_count == 0
        assert report.file_size_bytes == Path(report.path).stat().st_size


class TestReportLifecycle:

    @pytest.mark.asyncio
    async def test_completed_report_is_persisted(self, fleet, reports_dir, caplog):
        caplog.set_level(logging.INFO, logger="audit")

        report = await generate_report(fleet, ReportType.INACTIVE_DEVICES)

        stored = await fleet.get(Report, report.report_id)
        assert stored.status == ReportStatus.COMPLETED.value
        assert stored.row_count == 1
        assert stored.file_size_bytes > 0
        assert stored.error is None
        path = Path(stored.path)
        assert path.parent == reports_dir
        assert re.fullmatch(
            rf"InactiveDevices_\d{{8}}_\d{{6}}_{report.report_id}\.csv", path.name
        )
        assert downloadable_path(stored) == path

        events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "audit"]
        assert events[-1]["action"] == "report_generated"
        assert events[-1]["subject_id"] == report.report_id
        assert events[-1]["payload"]["row_count"] == 1

    @pytest.mark.asyncio
    async def test_file_is_written_in_a_worker_thread(self, fleet, monkeypatch):
        offloaded = []
        real_to_thread = asyncio.to_thread

        async def recording_to_thread(func, *args, **kwargs):
            offloaded.append(func.__name__)
            return await real_to_thread(func, *args, **kwargs)

        monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)

        report = await generate_report(fleet, ReportType.INACTIVE_DEVICES)

        assert offloaded == ["_write_report_file"]
        assert Path(report.path).is_file()

    @pytest.mark.asyncio
    async def test_unknown_type_writes_nothing(self, db_session):
        with pytest.raises(UnknownReportTypeError, match="Unknown report type: Bogus"):
            await generate_report(db_session, "Bogus")

        assert await db_session.scalar(select(func.count()).select_from(Report)) == 0

    @pytest.mark.asyncio
    async def test_write_failure_marks_report_failed(self, fleet, tmp_path, monkeypatch, caplog):
        from config import settings

        blocker = tmp_path / "not-a-directory"
        blocker.write_text("x")
        monkeypatch.setattr(settings, "REPORTS_DIR", str(blocker))
        caplog.set_level(logging.INFO, logger="audit")

        with pytest.raises(OSError):
            await generate_report(fleet, ReportType.INACTIVE_DEVICES)

        reports = (await fleet.execute(select(Report))).scalars().all()
        assert len(reports) == 1
        assert reports[0].status == ReportStatus.FAILED.value
        assert reports[0].error
        assert downloadable_path(reports[0]) is None

        events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "audit"]
        assert events[-1]["action"] == "report_failed"
        assert "error_message" in events[-1]["payload"]

    @pytest.mark.asyncio
    async def test_missing_file_is_not_downloadable(self, fleet):
        report = await generate_report(fleet, ReportType.INACTIVE_DEVICES)
        Path(report.path).unlink()

        assert downloadable_path(report) is None

    @pytest.mark.asyncio
    async def test_list_reports_newest_first(self, fleet):
        first = await generate_report(fleet, ReportType.INACTIVE_DEVICES)
        second = await generate_report(fleet, ReportType.UNMATCHED_SIMS)

        listed = await list_reports(fleet)

        assert [r.report_id for r in listed[:2]] == [second.report_id, first.report_id]


class TestCatalog:

    def test_every_type_has_a_definition(self):
        assert set(REPORT_CATALOG) == set(ReportType)
        assert [t["value"] for t in report_types()] == [t.value for t in ReportType]

    def test_parse_report_type(self):
        assert parse_report_type("UnmatchedSims") is ReportType.UNMATCHED_SIMS
        with pytest.raises(UnknownReportTypeError):
            parse_report_type("unmatchedsims")

    def test_render_csv_quotes_embedded_commas(self):
        row_type = REPORT_CATALOG[ReportType.UNMATCHED_SIMS].row_type
        row = row_type("I1", "", "", "", "", "spare, boxed", "a, b", "")

        content = render_csv(row_type.HEADERS, [row]).decode("utf-8")

        assert content.splitlines()[1] == 'I1,,,,,"spare, boxed","a, b",'
