"""Provider adapter backed by a JSON snapshot file on disk."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

from utils.timestamps import utcnow
from .base import DeviceHeartbeat, ProviderAdapter, ProviderInventory
from .payloads import device_from_payload, heartbeats_from_payloads, sim_from_payload

logger = logging.getLogger(__name__)


class JsonFileProviderAdapter(ProviderAdapter):
    """
    Reads ``{"devices": [...], "sims": [...], "heartbeats": [...]}``.

    The file is re-read on every call so an exporter can drop fresh
    snapshots in place between runs.
    """

    def __init__(self, provider_name: str, file_path: str):
        self.provider_name = provider_name
        self.file_path = Path(file_path)

    async def _load(self) -> Dict[str, Any]:
        if not self.file_path.exists():
            raise FileNotFoundError(f"Snapshot file not found: {self.file_path}")
        text = await asyncio.to_thread(self.file_path.read_text, encoding="utf-8")
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Snapshot {self.file_path} must be a JSON object")
        return data

    async def fetch_inventory(self) -> ProviderInventory:
        data = await self._load()
        devices = [device_from_payload(item) for item in data.get("devices") or []]
        sims = [sim_from_payload(item) for item in data.get("sims") or []]
        logger.info(
            f"Loaded {len(devices)} devices and {len(sims)} SIMs from {self.file_path.name}",
            extra={"provider": self.provider_name},
        )
        return ProviderInventory(devices=devices, sims=sims, fetched_at=utcnow())

    async def fetch_last_seen(self, device_ids: Iterable[str]) -> List[DeviceHeartbeat]:
        wanted = set(device_ids)
        data = await self._load()
        heartbeats = heartbeats_from_payloads(data.get("heartbeats") or [])
        return [hb for hb in heartbeats if hb.device_id in wanted]

    async def is_healthy(self) -> bool:
        return self.file_path.is_file()
