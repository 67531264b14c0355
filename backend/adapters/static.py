"""In-memory provider adapter for demo data and tests."""

from typing import Dict, Iterable, List, Optional

from .base import (
    DeviceHeartbeat,
    DeviceRecord,
    ProviderInventory,
    SimPlatformAdapter,
    SimRecord,
)


class StaticProviderAdapter(SimPlatformAdapter):
    """Serves a fixed snapshot; SIM metadata updates are applied in place."""

    def __init__(
        self,
        provider_name: str,
        devices: Optional[List[DeviceRecord]] = None,
        sims: Optional[List[SimRecord]] = None,
        heartbeats: Optional[List[DeviceHeartbeat]] = None,
        healthy: bool = True,
    ):
        self.provider_name = provider_name
        self.devices = list(devices or [])
        self.sims = list(sims or [])
        self.heartbeats = list(heartbeats or [])
        self.healthy = healthy

    async def fetch_inventory(self) -> ProviderInventory:
        return ProviderInventory(devices=list(self.devices), sims=list(self.sims))

    async def fetch_last_seen(self, device_ids: Iterable[str]) -> List[DeviceHeartbeat]:
        wanted = set(device_ids)
        return [hb for hb in self.heartbeats if hb.device_id in wanted]

    async def is_healthy(self) -> bool:
        return self.healthy

    async def fetch_sims(self) -> List[SimRecord]:
        return list(self.sims)

    def _sims_by_iccid(self) -> Dict[str, SimRecord]:
        return {sim.iccid: sim for sim in self.sims}

    async def update_sim_description(self, iccid: str, description: str) -> None:
        sim = self._sims_by_iccid().get(iccid)
        if sim is None:
            raise KeyError(f"Unknown ICCID {iccid}")
        sim.description = description

    async def update_sim_tags(self, iccid: str, tags: List[str]) -> None:
        sim = self._sims_by_iccid().get(iccid)
        if sim is None:
            raise KeyError(f"Unknown ICCID {iccid}")
        sim.tags = sorted(set(tags))
