"""
Pydantic v2 schemas with strict input validation and lenient output serialization.

Architecture:
  - Every schema speaks camelCase on the wire (``deviceId``, ``matchBasis``)
    while accepting the snake_case field names as well.
  - *Request classes carry strict validators so bad input is rejected with
    a 422 before any service code runs.
  - *Response classes have no validators and read straight from ORM rows or
    service dataclasses (``from_attributes``), so anything already stored
    serializes without crashing.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models import LinkSource, MatchBasis


class CamelModel(BaseModel):
    """Base for every API schema: camelCase aliases, snake_case accepted."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ── Reusable validators ──────────────────────────────────────────────

IDENTIFIER_MAX_LENGTH = 100


def _validate_identifier(value: str, field_name: str) -> str:
    """Trim an identifier and reject empty or oversized values."""
    value = value.strip()
    if not value:
        raise ValueError(f"{field_name} must not be empty")
    if len(value) > IDENTIFIER_MAX_LENGTH:
        raise ValueError(
            f"{field_name} too long. Maximum {IDENTIFIER_MAX_LENGTH} characters allowed"
        )
    return value


class _LinkValidators:
    """Mixin-style validators reused by the link and unlink requests."""

    @field_validator("device_id", check_fields=False)
    @classmethod
    def validate_device_id(cls, v: str) -> str:
        return _validate_identifier(v, "deviceId")

    @field_validator("iccid", check_fields=False)
    @classmethod
    def validate_iccid(cls, v: str) -> str:
        return _validate_identifier(v, "iccid")

    @field_validator("asset_id", check_fields=False)
    @classmethod
    def validate_asset_id(cls, v: str) -> str:
        return _validate_identifier(v, "assetId")


# ═══════════════════════════════════════════════════════════════════════
# LINK SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class LinkDeviceSimRequest(CamelModel, _LinkValidators):
    """Schema for linking a device to a SIM."""

    device_id: str
    iccid: str
    source: LinkSource
    confidence: float = Field(..., ge=0.0, le=1.0)


class LinkAssetDeviceRequest(CamelModel, _LinkValidators):
    """Schema for linking an asset to a device."""

    asset_id: str
    device_id: str
    match_basis: MatchBasis


class UnlinkDeviceSimRequest(CamelModel, _LinkValidators):
    device_id: str
    iccid: str


class UnlinkAssetDeviceRequest(CamelModel, _LinkValidators):
    asset_id: str
    device_id: str


class MessageResponse(CamelModel):
    message: str


# ═══════════════════════════════════════════════════════════════════════
# UNIFIED VIEW SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class UnifiedDeviceResponse(CamelModel):
    """One row of the device/SIM/asset projection."""

    device_id: str
    oem: str
    model: Optional[str] = None
    imei: Optional[str] = None
    serial: Optional[str] = None
    account: Optional[str] = None
    status: str
    active_to: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    iccid: Optional[str] = None
    msisdn: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None
    source: Optional[str] = None
    link_first_seen_at: Optional[datetime] = None
    link_last_seen_at: Optional[datetime] = None
    asset_id: Optional[str] = None
    asset_name: Optional[str] = None
    match_basis: Optional[str] = None


class UnifiedDeviceViewResponse(CamelModel):
    devices: List[UnifiedDeviceResponse]
    total_count: int
    page: int
    page_size: int
    total_pages: int


# ═══════════════════════════════════════════════════════════════════════
# RECONCILIATION SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class ReconciliationResultResponse(CamelModel):
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    is_success: bool
    error: Optional[str] = None
    force_refresh: bool = False
    devices_processed: int = 0
    sims_processed: int = 0
    new_links_created: int = 0
    links_updated: int = 0
    duplicate_iccids_found: int = 0
    unmatched_sims: int = 0
    orphaned_devices: int = 0
    errors: List[str] = Field(default_factory=list)
    metrics: Dict[str, Any] = Field(default_factory=dict)


class ReconcileResponse(CamelModel):
    message: str
    result: ReconciliationResultResponse


class ReconciliationRunResponse(ReconciliationResultResponse):
    """Persisted run history entry."""

    providers_succeeded: List[str] = Field(default_factory=list)
    provider_errors: Dict[str, str] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════
# REPORT SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class GenerateReportRequest(CamelModel):
    # Validated against the catalog by the service so unknown names map to 400
    type: str = Field(..., min_length=1, max_length=64)


class ReportResponse(CamelModel):
    report_id: str
    type: str
    status: str
    generated_at: datetime
    row_count: int = 0
    file_size_bytes: int = 0
    error: Optional[str] = None
    download_url: Optional[str] = None


class GenerateReportResponse(CamelModel):
    message: str
    report: ReportResponse


class ReportTypeResponse(CamelModel):
    value: str
    name: str
    description: str


# ═══════════════════════════════════════════════════════════════════════
# ASSET SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class AssetFields(CamelModel):
    """Pure field definitions for assets.  No validators."""

    name: str = Field(..., max_length=255)
    external_ref: Optional[str] = Field(None, max_length=255)
    serial_match_hint: Optional[str] = Field(None, max_length=100)


class AssetUpsert(AssetFields):
    """Schema for creating or overwriting an asset."""

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v

    @field_validator("serial_match_hint")
    @classmethod
    def validate_serial_match_hint(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        # Matched verbatim against device serials, which carry no whitespace
        v = "".join(v.split())
        return v or None


class AssetResponse(AssetFields):
    asset_id: str
    created_at: datetime
    updated_at: datetime
