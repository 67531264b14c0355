from sqlalchemy import Column, String, DateTime, Text, JSON, Index

from database import Base
from utils.timestamps import utcnow


class Sim(Base):
    """SQLAlchemy model for cellular SIM cards."""

    __tablename__ = "sims"

    iccid = Column(String(32), primary_key=True)

    msisdn = Column(String(32), nullable=True)
    status = Column(String(64), nullable=False, default="")  # free text from the SIM platform
    carrier = Column(String(255), nullable=True)
    account_id = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)  # sorted, de-duplicated

    last_synced_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_sim_msisdn", "msisdn"),
        Index("idx_sim_account_id", "account_id"),
    )

    def __repr__(self):
        return f"<Sim(iccid={self.iccid}, msisdn={self.msisdn}, status={self.status})>"
