from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON, Index

from database import Base
from utils.timestamps import utcnow


class ReconciliationRun(Base):
    """SQLAlchemy model for reconciliation run history."""

    __tablename__ = "reconciliation_runs"

    run_id = Column(String(36), primary_key=True)

    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    is_success = Column(Boolean, nullable=False, default=False)
    force_refresh = Column(Boolean, nullable=False, default=False)
    error = Column(Text, nullable=True)

    devices_processed = Column(Integer, nullable=False, default=0)
    sims_processed = Column(Integer, nullable=False, default=0)
    new_links_created = Column(Integer, nullable=False, default=0)
    links_updated = Column(Integer, nullable=False, default=0)
    duplicate_iccids_found = Column(Integer, nullable=False, default=0)
    unmatched_sims = Column(Integer, nullable=False, default=0)
    orphaned_devices = Column(Integer, nullable=False, default=0)

    # Per-provider outcome
    providers_succeeded = Column(JSON, nullable=False, default=list)  # ["teltonika", ...]
    provider_errors = Column(JSON, nullable=False, default=dict)  # {"dm": "timed out"}

    errors = Column(JSON, nullable=False, default=list)
    metrics = Column(JSON, nullable=False, default=dict)

    __table_args__ = (Index("idx_reconciliation_run_started_at", "started_at"),)

    def __repr__(self):
        return f"<ReconciliationRun(run_id={self.run_id}, is_success={self.is_success})>"
