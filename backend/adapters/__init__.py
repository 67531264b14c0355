"""Upstream provider adapters."""

from .base import (
    DeviceHeartbeat,
    DeviceRecord,
    ProviderAdapter,
    ProviderInventory,
    SimPlatformAdapter,
    SimRecord,
)
from .http import HttpProviderAdapter, HttpSimPlatformAdapter
from .json_file import JsonFileProviderAdapter
from .registry import build_adapters, get_provider_adapters
from .static import StaticProviderAdapter

__all__ = [
    "DeviceHeartbeat",
    "DeviceRecord",
    "ProviderAdapter",
    "ProviderInventory",
    "SimPlatformAdapter",
    "SimRecord",
    "HttpProviderAdapter",
    "HttpSimPlatformAdapter",
    "JsonFileProviderAdapter",
    "StaticProviderAdapter",
    "build_adapters",
    "get_provider_adapters",
]
