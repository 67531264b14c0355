import enum
import uuid

from sqlalchemy import Column, Integer, String, DateTime, Text

from database import Base
from utils.timestamps import utcnow


class ReportType(str, enum.Enum):
    ACTIVE_LINKED_DEVICES = "ActiveLinkedDevices"
    INACTIVE_DEVICES = "InactiveDevices"
    SIM_BUT_NO_ASSET = "SimButNoAsset"
    ASSET_BUT_NO_SIM = "AssetButNoSim"
    NO_LINKAGE_ORPHANED = "NoLinkageOrphaned"
    UNMATCHED_SIMS = "UnmatchedSims"


class ReportStatus(str, enum.Enum):
    PENDING = "Pending"
    GENERATING = "Generating"
    COMPLETED = "Completed"
    FAILED = "Failed"


class Report(Base):
    """SQLAlchemy model for generated tabular extracts."""

    __tablename__ = "reports"

    report_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False, default=ReportStatus.PENDING.value)

    path = Column(String(1024), nullable=False, default="")
    row_count = Column(Integer, nullable=False, default=0)
    file_size_bytes = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)

    generated_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Report(report_id={self.report_id}, type={self.type}, status={self.status})>"
