from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class UnavailableRangeOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start: str
    end: str
    source: Optional[str] = None
    booking_id: Optional[str] = Field(None, alias="bookingId")


class ListingPolicyOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    min_nights: int = Field(alias="minNights")
    max_nights: Optional[int] = Field(None, alias="maxNights")
    prep_days: int = Field(0, alias="prepDays")
    booking_mode: str = Field(alias="bookingMode")


class AvailabilityResponse(BaseModel):
    """Calendar for one listing over [from, to)"""
    model_config = ConfigDict(populate_by_name=True)

    listing_id: str = Field(alias="listingId")
    window_from: str = Field(alias="from")
    window_to: str = Field(alias="to")
    blocked_ranges: List[UnavailableRangeOut] = Field(default_factory=list, alias="blockedRanges")
    booked_ranges: List[UnavailableRangeOut] = Field(default_factory=list, alias="bookedRanges")
    disabled_dates: List[str] = Field(default_factory=list, alias="disabledDates")
    policy: ListingPolicyOut


class AvailabilityCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    listing_id: str = Field(..., min_length=1, max_length=36, alias="listingId")
    check_in: str = Field(..., max_length=10, alias="checkIn")
    check_out: str = Field(..., max_length=10, alias="checkOut")


class AvailabilityCheckResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    reason: Optional[str] = None
    nights: Optional[int] = None
    conflicting_dates: List[str] = Field(default_factory=list, alias="conflictingDates")
    suggested_check_out: Optional[str] = Field(None, alias="suggestedCheckOut")
