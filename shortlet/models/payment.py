"""
Shortlet Payment Model

One payment intent per booking. The webhook handlers and the reconcile
sweep are the only writers of the initiated -> succeeded/failed edge.
"""

import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from ..database import Base


class PaymentProvider(str, enum.Enum):
    PAYSTACK = "paystack"
    STRIPE = "stripe"


class PaymentStatus(str, enum.Enum):
    INITIATED = "initiated"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class ShortletPayment(Base):
    __tablename__ = "shortlet_payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    booking_id = Column(String(36), ForeignKey("shortlet_bookings.id"), nullable=False, unique=True)

    provider = Column(String(20), nullable=False)
    provider_reference = Column(String(255), nullable=False)  # Paystack reference / Stripe session id
    status = Column(String(20), default=PaymentStatus.INITIATED.value, nullable=False)

    amount_total_minor = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="NGN")

    # Last verified gateway answer
    provider_payload_json = Column(Text, nullable=True)
    provider_tx_id = Column(String(255), nullable=True)
    authorization_code = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)

    # Reconcile bookkeeping
    verify_attempts = Column(Integer, default=0, nullable=False)
    last_verified_at = Column(DateTime, nullable=True)
    needs_reconcile = Column(Boolean, default=False, nullable=False)
    reconcile_reason = Column(String(100), nullable=True)
    reconcile_locked_until = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = relationship("ShortletBooking", back_populates="payment")

    __table_args__ = (
        UniqueConstraint("provider", "provider_reference", name="uq_shortlet_payments_provider_reference"),
        Index("ix_shortlet_payments_reconcile", "status", "created_at", "reconcile_locked_until"),
    )

    def __repr__(self):
        return f"<ShortletPayment {self.provider}:{self.provider_reference} status={self.status}>"
