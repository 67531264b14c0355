"""Base classes and data structures for upstream provider adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from models import DeviceOem
from utils.timestamps import utcnow


@dataclass
class DeviceRecord:
    """A device as reported by one provider."""

    device_id: str
    oem: DeviceOem = DeviceOem.UNKNOWN
    model: Optional[str] = None
    imei: Optional[str] = None
    serial: Optional[str] = None
    account: Optional[str] = None
    is_active: bool = True
    active_to: Optional[datetime] = None
    provider_ref: Optional[str] = None


@dataclass
class SimRecord:
    """A SIM card as reported by one provider."""

    iccid: str
    msisdn: Optional[str] = None
    status: str = ""
    carrier: Optional[str] = None
    account_id: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class DeviceHeartbeat:
    """Most recent liveness signal for a device."""

    device_id: str
    last_seen_at: datetime


@dataclass
class ProviderInventory:
    """Snapshot returned by a single inventory fetch."""

    devices: List[DeviceRecord] = field(default_factory=list)
    sims: List[SimRecord] = field(default_factory=list)
    fetched_at: datetime = field(default_factory=utcnow)
    is_complete: bool = True
    error: Optional[str] = None


class ProviderAdapter(ABC):
    """Abstract base class for every upstream device/SIM source."""

    provider_name: str = "unknown"

    @abstractmethod
    async def fetch_inventory(self) -> ProviderInventory:
        """Fetch the provider's current devices and SIMs."""

    @abstractmethod
    async def fetch_last_seen(self, device_ids: Iterable[str]) -> List[DeviceHeartbeat]:
        """Fetch liveness heartbeats for the given devices."""

    @abstractmethod
    async def is_healthy(self) -> bool:
        """Cheap reachability check used by the health endpoint."""

    def __repr__(self):
        return f"<{type(self).__name__}(provider_name={self.provider_name})>"


class SimPlatformAdapter(ProviderAdapter):
    """Provider that also manages SIM metadata on the carrier platform."""

    @abstractmethod
    async def fetch_sims(self) -> List[SimRecord]:
        """Fetch all SIMs known to the platform."""

    @abstractmethod
    async def update_sim_description(self, iccid: str, description: str) -> None:
        """Replace a SIM's description on the platform."""

    @abstractmethod
    async def update_sim_tags(self, iccid: str, tags: List[str]) -> None:
        """Replace a SIM's tag set on the platform."""
