import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from ..database import Base


class ShortletBlock(Base):
    """Host-applied calendar block over [date_from, date_to)"""
    __tablename__ = "shortlet_blocks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    listing_id = Column(String(36), ForeignKey("shortlet_listings.id", ondelete="CASCADE"), nullable=False)
    date_from = Column(Date, nullable=False)
    date_to = Column(Date, nullable=False)
    reason = Column(String(255), nullable=True)
    created_by = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    listing = relationship("ShortletListing", back_populates="blocks")

    __table_args__ = (
        Index("ix_shortlet_blocks_listing_dates", "listing_id", "date_from", "date_to"),
    )
