from .device import Device, DeviceOem, DeviceStatus
from .sim import Sim
from .asset import Asset
from .links import DeviceSimLink, AssetDeviceLink, LinkSource, MatchBasis
from .report import Report, ReportType, ReportStatus
from .reconciliation_run import ReconciliationRun

__all__ = [
    "Device",
    "DeviceOem",
    "DeviceStatus",
    "Sim",
    "Asset",
    "DeviceSimLink",
    "AssetDeviceLink",
    "LinkSource",
    "MatchBasis",
    "Report",
    "ReportType",
    "ReportStatus",
    "ReconciliationRun",
]
