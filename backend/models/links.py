"""
Link tables between devices, SIMs and assets.

Both tables use a composite primary key, so there is at most one row per
pair. Nothing stops a SIM from being linked to several devices; that
anomaly is what the reconciliation audit reports as a duplicate ICCID.
Rows are removed automatically when the referenced entity is deleted.
"""

import enum

from sqlalchemy import Column, String, Float, DateTime, ForeignKey, CheckConstraint, Index

from database import Base
from utils.timestamps import utcnow


class LinkSource(str, enum.Enum):
    """Evidence a device-SIM link was based on."""

    ICCID = "Iccid"
    IMEI = "Imei"
    SERIAL = "Serial"


class MatchBasis(str, enum.Enum):
    """Evidence an asset-device link was based on."""

    SERIAL = "Serial"
    IMEI = "Imei"
    MANUAL = "Manual"


class DeviceSimLink(Base):
    """SQLAlchemy model for device <-> SIM associations."""

    __tablename__ = "links_device_sim"

    device_id = Column(
        String(100),
        ForeignKey("devices.device_id", ondelete="CASCADE"),
        primary_key=True,
    )
    iccid = Column(
        String(32),
        ForeignKey("sims.iccid", ondelete="CASCADE"),
        primary_key=True,
    )

    confidence = Column(Float, nullable=False, default=1.0)  # 0.0 - 1.0
    source = Column(String(16), nullable=False)

    first_seen_at = Column(DateTime, nullable=False, default=utcnow)  # set once
    last_seen_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_link_confidence_range"),
        Index("idx_link_device_sim_iccid", "iccid"),
    )

    def __repr__(self):
        return (
            f"<DeviceSimLink(device_id={self.device_id}, iccid={self.iccid}, "
            f"confidence={self.confidence}, source={self.source})>"
        )


class AssetDeviceLink(Base):
    """SQLAlchemy model for asset <-> device associations."""

    __tablename__ = "links_asset_device"

    asset_id = Column(
        String(100),
        ForeignKey("assets.asset_id", ondelete="CASCADE"),
        primary_key=True,
    )
    device_id = Column(
        String(100),
        ForeignKey("devices.device_id", ondelete="CASCADE"),
        primary_key=True,
    )

    match_basis = Column(String(16), nullable=False)

    first_seen_at = Column(DateTime, nullable=False, default=utcnow)
    last_seen_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_link_asset_device_device_id", "device_id"),)

    def __repr__(self):
        return (
            f"<AssetDeviceLink(asset_id={self.asset_id}, device_id={self.device_id}, "
            f"match_basis={self.match_basis})>"
        )
