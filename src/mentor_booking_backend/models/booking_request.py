'''
Custom time requests (a student asking for a slot the mentor never listed).
'''
from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..database.db_enums import BookingRequestStatusEnum


class BookingRequestCreate(BaseModel):
    """A student asking a mentor for a time outside the listed slots."""
    mentor_id: UUID
    requested_date: date
    requested_start_time: time
    requested_end_time: time
    message: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode='after')
    def validate_times(self) -> 'BookingRequestCreate':
        if self.requested_start_time == self.requested_end_time:
            raise ValueError('requested_end_time must differ from requested_start_time')
        return self


class BookingRequestResponse(BaseModel):
    """The mentor's answer."""
    status: BookingRequestStatusEnum
    mentor_response: Optional[str] = Field(None, max_length=2000)


class BookingRequestRead(BaseModel):
    id: UUID
    mentor_id: UUID
    mentee_id: UUID
    requested_date: date
    requested_start_time: time
    requested_end_time: time
    status: BookingRequestStatusEnum
    message: Optional[str] = None
    mentor_response: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
