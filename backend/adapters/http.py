"""httpx-backed adapters for REST provider APIs."""

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from utils.timestamps import utcnow
from .base import (
    DeviceHeartbeat,
    ProviderAdapter,
    ProviderInventory,
    SimPlatformAdapter,
    SimRecord,
)
from .payloads import (
    device_from_payload,
    heartbeats_from_payloads,
    sim_from_payload,
)

logger = logging.getLogger(__name__)


class HttpProviderAdapter(ProviderAdapter):
    """
    Talks to a provider exposing:

        GET  {base_url}/inventory   -> {"devices": [...], "sims": [...]}
        POST {base_url}/heartbeats  <- {"deviceIds": [...]}
                                    -> {"heartbeats": [...]} or a bare list
        GET  {base_url}/health      -> any 2xx means healthy

    A fresh ``httpx.AsyncClient`` is opened per call; ``transport`` lets
    tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider_name = provider_name
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        async with self._client() as client:
            resp = await client.request(method, path, **kwargs)
            resp.raise_for_status()
            if not resp.content:
                return None
            return resp.json()

    async def fetch_inventory(self) -> ProviderInventory:
        data = await self._request("GET", "/inventory") or {}
        devices = [device_from_payload(item) for item in data.get("devices") or []]
        sims = [sim_from_payload(item) for item in data.get("sims") or []]
        logger.info(
            f"Fetched {len(devices)} devices and {len(sims)} SIMs",
            extra={"provider": self.provider_name},
        )
        return ProviderInventory(
            devices=devices,
            sims=sims,
            fetched_at=utcnow(),
            is_complete=bool(data.get("isComplete", True)),
        )

    async def fetch_last_seen(self, device_ids: Iterable[str]) -> List[DeviceHeartbeat]:
        ids = list(device_ids)
        if not ids:
            return []
        data = await self._request("POST", "/heartbeats", json={"deviceIds": ids})
        if isinstance(data, dict):
            data = data.get("heartbeats") or []
        return heartbeats_from_payloads(data or [])

    async def is_healthy(self) -> bool:
        try:
            await self._request("GET", "/health")
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Health probe failed: {e!r}", extra={"provider": self.provider_name})
            return False


class HttpSimPlatformAdapter(HttpProviderAdapter, SimPlatformAdapter):
    """
    Carrier SIM platform with writable metadata:

        GET   {base_url}/sims           -> {"sims": [...]} or a bare list
        PATCH {base_url}/sims/{iccid}   <- {"description": ...} | {"tags": [...]}
    """

    async def fetch_sims(self) -> List[SimRecord]:
        data = await self._request("GET", "/sims")
        if isinstance(data, dict):
            data = data.get("sims") or []
        return [sim_from_payload(item) for item in data or []]

    async def _patch_sim(self, iccid: str, body: Dict[str, Any]) -> None:
        await self._request("PATCH", f"/sims/{iccid}", json=body)
        logger.info(f"Updated SIM {iccid}: {sorted(body)}", extra={"provider": self.provider_name})

    async def update_sim_description(self, iccid: str, description: str) -> None:
        await self._patch_sim(iccid, {"description": description})

    async def update_sim_tags(self, iccid: str, tags: List[str]) -> None:
        await self._patch_sim(iccid, {"tags": sorted(set(tags))})
