"""
Payment Webhook Event Ledger

Every gateway delivery lands here before it can touch a booking:
- UNIQUE(provider, payload_hash) catches byte-identical redelivery
- UNIQUE(provider, event_id) catches the same event re-signed
- Rows are never deleted; the terminal status and error are the audit trail
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Index, UniqueConstraint
from ..database import Base
import enum


class WebhookEventStatus(str, enum.Enum):
    RECEIVED = "received"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class PaymentWebhookEvent(Base):
    __tablename__ = "payment_webhook_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    provider = Column(String(20), nullable=False)  # paystack, stripe
    event = Column(String(100), nullable=True)     # charge.success, checkout.session.completed
    event_id = Column(String(255), nullable=True)  # Gateway event id (Stripe evt_...)
    reference = Column(String(255), nullable=True)

    signature = Column(Text, nullable=True)
    payload_json = Column(Text, nullable=False)
    payload_hash = Column(String(64), nullable=False)  # SHA256 of the raw body

    status = Column(String(20), default=WebhookEventStatus.RECEIVED.value, nullable=False)
    error = Column(Text, nullable=True)

    received_at = Column(DateTime, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("provider", "payload_hash", name="uq_payment_webhook_provider_hash"),
        UniqueConstraint("provider", "event_id", name="uq_payment_webhook_provider_event_id"),
        Index("ix_payment_webhook_reference", "provider", "reference"),
        Index("ix_payment_webhook_status", "status", "received_at"),
    )

    def __repr__(self):
        return f"<PaymentWebhookEvent {self.provider} {self.event} status={self.status}>"
