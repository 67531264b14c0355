"""Builds the provider adapter collection from settings."""

import logging
from functools import lru_cache
from typing import Iterable, List

from config import ProviderConfig, settings
from .base import ProviderAdapter
from .http import HttpProviderAdapter, HttpSimPlatformAdapter
from .json_file import JsonFileProviderAdapter

logger = logging.getLogger(__name__)


def build_adapter(config: ProviderConfig, timeout: float) -> ProviderAdapter:
    if config.kind == "file":
        if not config.path:
            raise ValueError(f"Provider '{config.name}' of kind 'file' needs a path")
        return JsonFileProviderAdapter(config.name, config.path)

    if not config.base_url:
        raise ValueError(f"Provider '{config.name}' of kind 'http' needs a base_url")
    adapter_cls = HttpSimPlatformAdapter if config.sim_platform else HttpProviderAdapter
    return adapter_cls(
        config.name,
        config.base_url,
        api_key=config.api_key,
        timeout=timeout,
    )


def build_adapters(
    configs: Iterable[ProviderConfig],
    timeout: float = 30.0,
) -> List[ProviderAdapter]:
    """Instantiate adapters in configuration order (later providers win on conflicts)."""
    adapters = []
    seen = set()
    for config in configs:
        if config.name in seen:
            raise ValueError(f"Duplicate provider name '{config.name}'")
        seen.add(config.name)
        adapters.append(build_adapter(config, timeout))
    logger.info(f"Registered {len(adapters)} provider adapters: {sorted(seen)}")
    return adapters


@lru_cache
def _configured_adapters() -> tuple:
    return tuple(build_adapters(settings.PROVIDERS, settings.PROVIDER_TIMEOUT_SECONDS))


def get_provider_adapters() -> List[ProviderAdapter]:
    """FastAPI dependency returning the registered adapters."""
    return list(_configured_adapters())
