"""
API endpoint tests for the SIM device platform backend.

Tests cover:
- Info and index endpoints
- Unified device view (camelCase wire format, filters, paging)
- Manual link / unlink endpoints and their 400 answers
- Reconciliation run, pipeline health and run history
- Report generation, listing and download
- Asset administration
- Validation error formatting
- Request ID tracking
"""

from datetime import datetime

import pytest
import pytest_asyncio
from httpx import AsyncClient

from adapters import DeviceHeartbeat, DeviceRecord, SimRecord, StaticProviderAdapter
from factories import make_asset, make_device, make_sim, make_sim_link
from services.reconciliation import ReconciliationEngine


@pytest_asyncio.fixture
async def seeded(session_factory):
    """Two devices, two SIMs and an asset; D1 is linked to I1."""
    async with session_factory() as session:
        session.add_all([
            make_device("D1", serial="SN1", account="Fleet A"),
            make_device("D2", status="Inactive", oem="DigitalMatter"),
            make_sim("I1", msisdn="+447700900001", tags=["fleet"]),
            make_sim("I2"),
            make_asset("A1", "Truck 7"),
        ])
        await session.commit()
        session.add(make_sim_link("D1", "I1", confidence=0.9))
        await session.commit()


class TestInfo:

    @pytest.mark.asyncio
    async def test_api_info(self, async_client: AsyncClient):
        """GET /api/info returns 200 with version and changelog."""
        response = await async_client.get("/api/info")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "SIM Device Platform"
        assert data["version"]
        assert "changelog" in data
        assert data["providers"] == []

    @pytest.mark.asyncio
    async def test_api_index_lists_endpoints(self, async_client: AsyncClient):
        response = await async_client.get("/api")
        assert response.status_code == 200
        assert response.json()["endpoints"]["devices"] == "/api/devices"


class TestDeviceView:

    @pytest.mark.asyncio
    async def test_list_uses_camel_case(self, async_client: AsyncClient, seeded):
        response = await async_client.get("/api/devices")
        assert response.status_code == 200
        data = response.json()
        assert data["totalCount"] == 2
        assert data["page"] == 1
        assert data["pageSize"] == 50
        assert data["totalPages"] == 1
        first = data["devices"][0]
        assert first["deviceId"] == "D1"
        assert first["iccid"] == "I1"
        assert first["msisdn"] == "+447700900001"
        assert first["tags"] == ["fleet"]
        assert first["confidence"] == 0.9
        assert first["source"] == "Iccid"
        assert first["linkFirstSeenAt"].startswith("2024-01-01")
        assert first["assetId"] is None

    @pytest.mark.asyncio
    async def test_filters_and_paging_from_query(self, async_client: AsyncClient, seeded):
        response = await async_client.get(
            "/api/devices", params={"oem": "Teltonika", "hasSim": "true", "q": "sn1"}
        )
        assert [d["deviceId"] for d in response.json()["devices"]] == ["D1"]

        response = await async_client.get("/api/devices", params={"hasSim": "false"})
        assert [d["deviceId"] for d in response.json()["devices"]] == ["D2"]

        response = await async_client.get("/api/devices", params={"page": 2, "pageSize": 1})
        data = response.json()
        assert [d["deviceId"] for d in data["devices"]] == ["D2"]
        assert data["totalPages"] == 2

    @pytest.mark.asyncio
    async def test_unknown_oem_rejected(self, async_client: AsyncClient):
        response = await async_client.get("/api/devices", params={"oem": "Queclink"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_page_size_over_limit_rejected(self, async_client: AsyncClient):
        response = await async_client.get("/api/devices", params={"pageSize": 501})
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "pageSize"


class TestLinkEndpoints:

    @pytest.mark.asyncio
    async def test_link_sim(self, async_client: AsyncClient, seeded):
        response = await async_client.post("/api/devices/link-sim", json={
            "deviceId": "D2",
            "iccid": "I2",
            "source": "Serial",
            "confidence": 0.6,
        })
        assert response.status_code == 200
        assert response.json() == {"message": "Device linked to SIM successfully"}

        view = await async_client.get("/api/devices", params={"q": "D2"})
        row = view.json()["devices"][0]
        assert row["iccid"] == "I2"
        assert row["source"] == "Serial"

    @pytest.mark.asyncio
    async def test_link_sim_unknown_device_is_400(self, async_client: AsyncClient, seeded):
        response = await async_client.post("/api/devices/link-sim", json={
            "deviceId": "NOPE",
            "iccid": "I2",
            "source": "Iccid",
            "confidence": 1,
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "Failed to link device to SIM"

    @pytest.mark.asyncio
    async def test_link_and_unlink_asset(self, async_client: AsyncClient, seeded):
        response = await async_client.post("/api/devices/link-asset", json={
            "assetId": "A1",
            "deviceId": "D2",
            "matchBasis": "Manual",
        })
        assert response.status_code == 200

        response = await async_client.request(
            "DELETE", "/api/devices/unlink-asset", json={"assetId": "A1", "deviceId": "D2"}
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Device unlinked from asset successfully"

        response = await async_client.request(
            "DELETE", "/api/devices/unlink-asset", json={"assetId": "A1", "deviceId": "D2"}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Failed to unlink device from asset"

    @pytest.mark.asyncio
    async def test_unlink_sim(self, async_client: AsyncClient, seeded):
        response = await async_client.request(
            "DELETE", "/api/devices/unlink-sim", json={"deviceId": "D1", "iccid": "I1"}
        )
        assert response.status_code == 200

        response = await async_client.request(
            "DELETE", "/api/devices/unlink-sim", json={"deviceId": "D1", "iccid": "I1"}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Failed to unlink device from SIM"

    @pytest.mark.asyncio
    async def test_link_unknown_asset_is_400(self, async_client: AsyncClient, seeded):
        response = await async_client.post("/api/devices/link-asset", json={
            "assetId": "NOPE",
            "deviceId": "D1",
            "matchBasis": "Serial",
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "Failed to link device to asset"


class TestValidationErrors:
    """The custom handler flattens pydantic errors into field/message/type."""

    @pytest.mark.asyncio
    async def test_confidence_out_of_range(self, async_client: AsyncClient):
        response = await async_client.post("/api/devices/link-sim", json={
            "deviceId": "D1",
            "iccid": "I1",
            "source": "Iccid",
            "confidence": 1.5,
        })
        assert response.status_code == 422
        data = response.json()
        assert data["detail"] == "Validation failed"
        assert data["errors"][0]["field"] == "confidence"
        assert "type" in data["errors"][0]

    @pytest.mark.asyncio
    async def test_blank_identifier_message_is_unwrapped(self, async_client: AsyncClient):
        response = await async_client.post("/api/devices/link-sim", json={
            "deviceId": "   ",
            "iccid": "I1",
            "source": "Iccid",
            "confidence": 1,
        })
        assert response.status_code == 422
        error = response.json()["errors"][0]
        assert error["field"] == "deviceId"
        assert error["message"] == "deviceId must not be empty"

    @pytest.mark.asyncio
    async def test_unknown_link_source(self, async_client: AsyncClient):
        response = await async_client.post("/api/devices/link-sim", json={
            "deviceId": "D1",
            "iccid": "I1",
            "source": "Guess",
            "confidence": 1,
        })
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "source"


class TestReconcileEndpoints:

    @pytest.mark.asyncio
    async def test_run_success(self, async_client: AsyncClient, provider_adapters):
        provider_adapters.append(StaticProviderAdapter(
            "teltonika",
            devices=[DeviceRecord(device_id="D1", serial="SN1")],
            sims=[SimRecord(iccid="I1")],
            heartbeats=[DeviceHeartbeat(device_id="D1", last_seen_at=datetime(2024, 3, 1, 10, 0, 0))],
        ))

        response = await async_client.post("/api/reconcile/run", params={"forceRefresh": "true"})

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Reconciliation completed successfully"
        result = data["result"]
        assert result["isSuccess"] is True
        assert result["forceRefresh"] is True
        assert result["devicesProcessed"] == 1
        assert result["simsProcessed"] == 1
        assert result["unmatchedSims"] == 1
        assert result["orphanedDevices"] == 1
        assert result["errors"] == []
        assert "durationMs" in result["metrics"]

    @pytest.mark.asyncio
    async def test_run_failure_is_400_with_result(
        self, async_client: AsyncClient, provider_adapters, monkeypatch
    ):
        async def broken_audit(self, result):
            raise RuntimeError("audit query exploded")

        monkeypatch.setattr(ReconciliationEngine, "_audit_consistency", broken_audit)
        provider_adapters.append(
            StaticProviderAdapter("p", devices=[DeviceRecord(device_id="D1")])
        )

        response = await async_client.post("/api/reconcile/run")

        assert response.status_code == 400
        data = response.json()
        assert data["message"] == "Reconciliation failed"
        assert data["error"] == "audit query exploded"
        assert data["result"]["isSuccess"] is False
        assert data["result"]["devicesProcessed"] == 1

    @pytest.mark.asyncio
    async def test_health_reports_providers(self, async_client: AsyncClient, provider_adapters):
        provider_adapters.append(StaticProviderAdapter("teltonika"))
        provider_adapters.append(StaticProviderAdapter("carrier", healthy=False))

        response = await async_client.get("/api/reconcile/health")

        assert response.status_code == 200
        data = response.json()
        assert data["overallHealthy"] is False
        assert data["databaseHealth"]["isConnected"] is True
        assert data["queueHealth"]["pendingJobs"] == 0
        by_name = {p["providerName"]: p for p in data["providerHealth"]}
        assert by_name["teltonika"]["isHealthy"] is True
        assert by_name["carrier"]["isHealthy"] is False
        assert by_name["teltonika"]["errorCount24h"] == 0
        assert by_name["teltonika"]["lastSuccessfulSync"] is None
        assert len(data["warnings"]) == 2

    @pytest.mark.asyncio
    async def test_health_after_successful_run(self, async_client: AsyncClient, provider_adapters):
        provider_adapters.append(StaticProviderAdapter("teltonika"))
        await async_client.post("/api/reconcile/run")

        data = (await async_client.get("/api/reconcile/health")).json()

        assert data["overallHealthy"] is True
        assert data["warnings"] == []
        assert data["providerHealth"][0]["lastSuccessfulSync"] is not None

    @pytest.mark.asyncio
    async def test_run_history(self, async_client: AsyncClient, provider_adapters):
        provider_adapters.append(StaticProviderAdapter("teltonika"))
        await async_client.post("/api/reconcile/run")
        await async_client.post("/api/reconcile/run")

        response = await async_client.get("/api/reconcile/runs", params={"limit": 1})

        assert response.status_code == 200
        runs = response.json()
        assert len(runs) == 1
        assert runs[0]["isSuccess"] is True
        assert runs[0]["providersSucceeded"] == ["teltonika"]
        assert runs[0]["providerErrors"] == {}


class TestReportEndpoints:

    @pytest.mark.asyncio
    async def test_types(self, async_client: AsyncClient):
        response = await async_client.get("/api/reports/types")
        assert response.status_code == 200
        values = [t["value"] for t in response.json()]
        assert values == [
            "ActiveLinkedDevices",
            "InactiveDevices",
            "SimButNoAsset",
            "AssetButNoSim",
            "NoLinkageOrphaned",
            "UnmatchedSims",
        ]

    @pytest.mark.asyncio
    async def test_generate_list_and_download(self, async_client: AsyncClient, seeded):
        response = await async_client.post("/api/reports/generate", json={"type": "InactiveDevices"})

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Report generated successfully"
        report = data["report"]
        assert report["status"] == "Completed"
        assert report["rowCount"] == 1
        assert report["downloadUrl"] == f"/api/reports/{report['reportId']}/download"

        listed = (await async_client.get("/api/reports")).json()
        assert [r["reportId"] for r in listed] == [report["reportId"]]

        download = await async_client.get(report["downloadUrl"])
        assert download.status_code == 200
        assert download.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=InactiveDevices_" in download.headers["content-disposition"]
        lines = download.content.decode("utf-8").splitlines()
        assert lines[0].startswith("DeviceID,OEM,")
        assert lines[1].startswith("D2,DigitalMatter,")
        assert len(download.content) == report["fileSizeBytes"]

    @pytest.mark.asyncio
    async def test_unknown_type_is_400(self, async_client: AsyncClient):
        response = await async_client.post("/api/reports/generate", json={"type": "Bogus"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Unknown report type: Bogus"

        assert (await async_client.get("/api/reports")).json() == []

    @pytest.mark.asyncio
    async def test_download_unknown_report_is_404(self, async_client: AsyncClient):
        response = await async_client.get("/api/reports/nope/download")
        assert response.status_code == 404
        assert response.json()["detail"] == "Report not found"

    @pytest.mark.asyncio
    async def test_download_after_file_removed_is_404(self, async_client: AsyncClient, reports_dir):
        report = (await async_client.post(
            "/api/reports/generate", json={"type": "UnmatchedSims"}
        )).json()["report"]
        for path in reports_dir.iterdir():
            path.unlink()

        response = await async_client.get(report["downloadUrl"])

        assert response.status_code == 404
        assert response.json()["detail"] == "Report file not available"


class TestAssetEndpoints:

    @pytest.mark.asyncio
    async def test_create_update_list_delete(self, async_client: AsyncClient):
        response = await async_client.put(
            "/api/assets/A1", json={"name": "  Truck 7 ", "serialMatchHint": "SN 1"}
        )
        assert response.status_code == 200
        created = response.json()
        assert created["assetId"] == "A1"
        assert created["name"] == "Truck 7"
        assert created["serialMatchHint"] == "SN1"

        response = await async_client.put("/api/assets/A1", json={"name": "Truck 8"})
        updated = response.json()
        assert updated["name"] == "Truck 8"
        assert updated["serialMatchHint"] is None
        assert updated["createdAt"] == created["createdAt"]
        assert updated["updatedAt"] > created["updatedAt"]

        listed = (await async_client.get("/api/assets")).json()
        assert [a["assetId"] for a in listed] == ["A1"]

        response = await async_client.delete("/api/assets/A1")
        assert response.status_code == 200
        assert response.json() == {"message": "Asset A1 deleted"}
        assert (await async_client.get("/api/assets")).json() == []

    @pytest.mark.asyncio
    async def test_delete_missing_asset_is_404(self, async_client: AsyncClient):
        response = await async_client.delete("/api/assets/NOPE")
        assert response.status_code == 404
        assert response.json()["detail"] == "Asset not found"

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, async_client: AsyncClient):
        response = await async_client.put("/api/assets/A1", json={"name": "   "})
        assert response.status_code == 422
        assert response.json()["errors"][0]["message"] == "name must not be empty"

    @pytest.mark.asyncio
    async def test_deleting_asset_removes_its_links(self, async_client: AsyncClient, seeded):
        await async_client.post("/api/devices/link-asset", json={
            "assetId": "A1", "deviceId": "D1", "matchBasis": "Manual",
        })

        await async_client.delete("/api/assets/A1")

        response = await async_client.get("/api/devices", params={"hasAsset": "true"})
        assert response.json()["totalCount"] == 0


class TestRequestId:

    @pytest.mark.asyncio
    async def test_request_id_header(self, async_client: AsyncClient):
        """Every response carries an X-Request-ID header."""
        response = await async_client.get("/api/info")
        assert "x-request-id" in response.headers
        assert len(response.headers["x-request-id"]) == 36

    @pytest.mark.asyncio
    async def test_request_ids_are_unique(self, async_client: AsyncClient):
        first = await async_client.get("/api")
        second = await async_client.get("/api")
        assert first.headers["x-request-id"] != second.headers["x-request-id"]
