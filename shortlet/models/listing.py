import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Index
from sqlalchemy.orm import relationship
from ..database import Base


class BookingMode(str, enum.Enum):
    INSTANT = "instant"
    REQUEST = "request"


class ShortletListing(Base):
    """Stay-able unit with its booking policy"""
    __tablename__ = "shortlet_listings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    host_user_id = Column(String(36), nullable=False)
    host_email = Column(String(255), nullable=True)
    title = Column(String(200), nullable=False)
    city = Column(String(100), nullable=True)
    country_code = Column(String(2), nullable=True)  # ISO-3166 alpha-2
    currency = Column(String(3), default="NGN", nullable=False)

    # Pricing in minor units (kobo / cents)
    nightly_price_minor = Column(Integer, nullable=False, default=0)
    cleaning_fee_minor = Column(Integer, nullable=False, default=0)

    # Policy
    booking_mode = Column(String(20), default=BookingMode.REQUEST.value, nullable=False)
    min_nights = Column(Integer, nullable=False, default=1)
    max_nights = Column(Integer, nullable=True)
    prep_days = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bookings = relationship("ShortletBooking", back_populates="listing")
    blocks = relationship("ShortletBlock", back_populates="listing", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_shortlet_listings_host", "host_user_id"),
    )

    @property
    def is_instant(self) -> bool:
        return self.booking_mode == BookingMode.INSTANT.value

    def __repr__(self):
        return f"<ShortletListing {self.id} {self.title}>"
