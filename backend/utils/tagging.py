"""Tag and identifier normalisation for provider payloads."""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional, List

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_identifier(value: Any) -> Optional[str]:
    """
    Clean a provider identifier (device id, IMEI, ICCID, serial).

    Providers disagree on padding and embedded spaces ("3567 8901 2345"),
    so surrounding and inner whitespace is dropped. Case is preserved.
    Empty values become None.
    """
    if value is None:
        return None
    text = _WHITESPACE_RE.sub("", str(value))
    return text or None


def normalize_tags(tags: Optional[Iterable[Any]]) -> List[str]:
    """Trim, drop empties, de-duplicate and sort a tag collection."""
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    cleaned = {str(t).strip() for t in tags if t is not None}
    return sorted(t for t in cleaned if t)

