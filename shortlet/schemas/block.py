from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
import re

from ..utils.dates import DATE_KEY_PATTERN, compare_date_keys, is_date_key


class BlockCreate(BaseModel):
    listing_id: str = Field(..., min_length=1, max_length=36)
    date_from: str = Field(..., pattern=DATE_KEY_PATTERN.pattern)
    date_to: str = Field(..., pattern=DATE_KEY_PATTERN.pattern)
    reason: Optional[str] = Field(None, max_length=280)

    @field_validator('date_from', 'date_to')
    @classmethod
    def real_calendar_day(cls, v):
        if not is_date_key(v):
            raise ValueError("not a calendar date")
        return v

    @field_validator('reason', mode='before')
    @classmethod
    def strip_reason(cls, v):
        if isinstance(v, str):
            return re.sub(r'<[^>]+>', '', v).strip() or None
        return v

    @model_validator(mode='after')
    def validate_dates(self):
        if compare_date_keys(self.date_to, self.date_from) <= 0:
            raise ValueError("date_to must be after date_from")
        return self


class BlockResponse(BaseModel):
    id: str
    listing_id: str
    date_from: str
    date_to: str
    reason: Optional[str] = None
    source: str
