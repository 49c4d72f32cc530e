import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Text, Boolean, DateTime, Index
from ..database import Base


class NotificationType(str, enum.Enum):
    INSTANT_CONFIRMED = "shortlet_booking_instant_confirmed"
    REQUEST_SENT = "shortlet_booking_request_sent"
    APPROVED = "shortlet_booking_approved"
    HOST_UPDATE = "shortlet_booking_host_update"
    DECLINED = "shortlet_booking_declined"
    EXPIRED = "shortlet_booking_expired"


class ShortletNotification(Base):
    """
    In-app notification for one booking edge and one recipient.

    dedupe_key is unique, e.g. ``shortlet_booking:<id>:instant_confirmed:tenant``,
    so a replayed transition can never store the same notice twice.
    """
    __tablename__ = "shortlet_notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=True)
    href = Column(String(500), nullable=True)
    dedupe_key = Column(String(255), nullable=False, unique=True)
    is_read = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_shortlet_notifications_user", "user_id", "is_read", "created_at"),
    )
