"""
Device model: one physical tracker as reported by an upstream provider.

A device is created the first time any provider reports it and is fully
overwritten on every later sighting. Reconciliation never deletes devices;
one that drops out of every feed simply keeps a stale ``last_synced_at``.
"""

import enum

from sqlalchemy import Column, String, DateTime, Index

from database import Base
from utils.timestamps import utcnow


class DeviceOem(str, enum.Enum):
    UNKNOWN = "Unknown"
    DIGITAL_MATTER = "DigitalMatter"
    TELTONIKA = "Teltonika"


class DeviceStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class Device(Base):
    """SQLAlchemy model for provider devices."""

    __tablename__ = "devices"

    # Provider-assigned, globally unique
    device_id = Column(String(100), primary_key=True)

    oem = Column(String(32), nullable=False, default=DeviceOem.UNKNOWN.value)
    model = Column(String(255), nullable=True)
    imei = Column(String(32), nullable=True)
    serial = Column(String(100), nullable=True)
    account = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default=DeviceStatus.ACTIVE.value)
    active_to = Column(DateTime, nullable=True)  # contract / subscription expiry
    provider_ref = Column(String(255), nullable=True)

    # Liveness (heartbeats) vs. inventory freshness
    last_seen_at = Column(DateTime, nullable=True)
    last_synced_at = Column(DateTime, nullable=False, default=utcnow)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    # Indexes
    __table_args__ = (
        Index("idx_device_imei", "imei"),
        Index("idx_device_serial", "serial"),
        Index("idx_device_account", "account"),
    )

    def __repr__(self):
        return f"<Device(device_id={self.device_id}, oem={self.oem}, serial={self.serial})>"
