import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from ..database import Base


class BookingStatus(str, enum.Enum):
    """Shortlet booking lifecycle"""
    PENDING_PAYMENT = "pending_payment"  # created, waiting on the gateway
    PENDING = "pending"                  # paid request, waiting on the host
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# Statuses whose nights are taken on the calendar
BLOCKING_STATUSES = (
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.COMPLETED.value,
)

# A paid booking already moved past payment; redelivered confirmations are no-ops
PAID_STATUSES = (
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.COMPLETED.value,
)


class ShortletBooking(Base):
    __tablename__ = "shortlet_bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    listing_id = Column(String(36), ForeignKey("shortlet_listings.id"), nullable=False)
    guest_user_id = Column(String(36), nullable=False)
    guest_email = Column(String(255), nullable=True)
    host_user_id = Column(String(36), nullable=False)

    status = Column(String(30), default=BookingStatus.PENDING_PAYMENT.value, nullable=False)
    booking_mode = Column(String(20), nullable=False)

    # Half-open stay [check_in, check_out)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    nights = Column(Integer, nullable=False)

    total_amount_minor = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="NGN")

    payment_reference = Column(String(120), nullable=True)

    # Deadline for the host to respond (request bookings) / for payment
    expires_at = Column(DateTime, nullable=True)
    refund_required = Column(Boolean, default=False)
    decline_reason = Column(Text, nullable=True)
    responded_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    listing = relationship("ShortletListing", back_populates="bookings")
    payment = relationship("ShortletPayment", back_populates="booking", uselist=False)

    __table_args__ = (
        Index("ix_shortlet_bookings_listing_dates", "listing_id", "check_in", "check_out"),
        Index("ix_shortlet_bookings_status_expiry", "status", "expires_at"),
        Index("ix_shortlet_bookings_guest", "guest_user_id"),
    )

    def __repr__(self):
        return f"<ShortletBooking {self.id} {self.status}>"
