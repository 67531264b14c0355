"""
Translation of provider JSON into adapter records.

Upstream sources are inconsistent: some send camelCase keys, some
snake_case; OEM names vary in case; status may be a boolean or a word;
timestamps may carry a trailing 'Z'. Everything is normalised here so the
reconciliation engine only ever sees clean records.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from models import DeviceOem
from utils.tagging import normalize_identifier, normalize_tags
from utils.timestamps import to_naive_utc
from .base import DeviceRecord, SimRecord, DeviceHeartbeat

logger = logging.getLogger(__name__)

_OEM_ALIASES = {
    "digitalmatter": DeviceOem.DIGITAL_MATTER,
    "digital_matter": DeviceOem.DIGITAL_MATTER,
    "digital matter": DeviceOem.DIGITAL_MATTER,
    "teltonika": DeviceOem.TELTONIKA,
}

_ACTIVE_WORDS = {"active", "enabled", "online", "true", "1", "yes"}


def _get(payload: Dict[str, Any], *keys: str) -> Any:
    """Return the first present key (camelCase and snake_case spellings)."""
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_oem(value: Any) -> DeviceOem:
    if isinstance(value, DeviceOem):
        return value
    text = (_text(value) or "").lower()
    return _OEM_ALIASES.get(text, DeviceOem.UNKNOWN)


def parse_active(payload: Dict[str, Any]) -> bool:
    flag = _get(payload, "isActive", "is_active", "active")
    if isinstance(flag, bool):
        return flag
    if flag is not None:
        return str(flag).strip().lower() in _ACTIVE_WORDS
    status = _text(_get(payload, "status"))
    if status is None:
        return True
    return status.lower() in _ACTIVE_WORDS


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    try:
        return to_naive_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        logger.warning(f"Ignoring unparseable timestamp: {value!r}")
        return None


def device_from_payload(payload: Dict[str, Any]) -> DeviceRecord:
    return DeviceRecord(
        device_id=normalize_identifier(_get(payload, "deviceId", "device_id", "id")) or "",
        oem=parse_oem(_get(payload, "oem")),
        model=_text(_get(payload, "model")),
        imei=normalize_identifier(_get(payload, "imei")),
        serial=normalize_identifier(_get(payload, "serial", "serialNumber", "serial_number")),
        account=_text(_get(payload, "account")),
        is_active=parse_active(payload),
        active_to=parse_timestamp(_get(payload, "activeTo", "active_to")),
        provider_ref=_text(_get(payload, "providerRef", "provider_ref")),
    )


def sim_from_payload(payload: Dict[str, Any]) -> SimRecord:
    return SimRecord(
        iccid=normalize_identifier(_get(payload, "iccid")) or "",
        msisdn=normalize_identifier(_get(payload, "msisdn")),
        status=_text(_get(payload, "status")) or "",
        carrier=_text(_get(payload, "carrier")),
        account_id=_text(_get(payload, "accountId", "account_id")),
        description=_text(_get(payload, "description")),
        tags=normalize_tags(_get(payload, "tags")),
    )


def heartbeat_from_payload(payload: Dict[str, Any]) -> Optional[DeviceHeartbeat]:
    device_id = normalize_identifier(_get(payload, "deviceId", "device_id", "id"))
    last_seen = parse_timestamp(_get(payload, "lastSeenAt", "last_seen_at", "lastSeen"))
    if not device_id or last_seen is None:
        return None
    return DeviceHeartbeat(device_id=device_id, last_seen_at=last_seen)


def heartbeats_from_payloads(payloads: Iterable[Dict[str, Any]]) -> List[DeviceHeartbeat]:
    heartbeats = []
    for item in payloads:
        heartbeat = heartbeat_from_payload(item)
        if heartbeat is not None:
            heartbeats.append(heartbeat)
    return heartbeats
