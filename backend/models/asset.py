"""
Asset model: the vehicle, trailer or container a device is mounted on.

Assets are administered outside the reconciliation run. Reconciliation only
reads ``serial_match_hint`` to auto-link devices whose serial matches it.
"""

from sqlalchemy import Column, String, DateTime, Index

from database import Base
from utils.timestamps import utcnow


class Asset(Base):
    """SQLAlchemy model for physical assets."""

    __tablename__ = "assets"

    asset_id = Column(String(100), primary_key=True)
    name = Column(String(255), nullable=False)
    external_ref = Column(String(255), nullable=True)
    serial_match_hint = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_asset_serial_match_hint", "serial_match_hint"),)

    def __repr__(self):
        return f"<Asset(asset_id={self.asset_id}, name={self.name})>"
