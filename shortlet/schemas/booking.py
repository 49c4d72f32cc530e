from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum
import re


class RespondAction(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


class BookingCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    listing_id: str = Field(..., min_length=1, max_length=36, alias="listingId")
    check_in: str = Field(..., max_length=10, alias="checkIn")
    check_out: str = Field(..., max_length=10, alias="checkOut")


class BookingRespond(BaseModel):
    action: RespondAction
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator('reason', mode='before')
    @classmethod
    def sanitize_reason(cls, v):
        """Strip markup from the free-text decline reason"""
        if v is None or not isinstance(v, str):
            return v
        v = re.sub(r'<script[^>]*>.*?</script>', '', v, flags=re.IGNORECASE | re.DOTALL)
        v = re.sub(r'<[^>]+>', '', v)
        return v.strip() or None


class BookingResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    listing_id: str = Field(alias="listingId")
    guest_user_id: str = Field(alias="guestUserId")
    host_user_id: str = Field(alias="hostUserId")
    status: str
    booking_mode: str = Field(alias="bookingMode")
    check_in: str = Field(alias="checkIn")
    check_out: str = Field(alias="checkOut")
    nights: int
    total_amount_minor: int = Field(alias="totalAmountMinor")
    currency: str
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    refund_required: bool = Field(False, alias="refundRequired")
    decline_reason: Optional[str] = Field(None, alias="declineReason")


class BookingCreateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    booking: BookingResponse
    payment_provider: str = Field(alias="paymentProvider")

