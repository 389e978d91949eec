'''
Pydantic models for bookings: the internal draft written by the Store
and the request/response shapes of the bookings API.
'''
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from ..database.db_enums import BookingStatusEnum, MeetingProviderEnum, SessionTypeEnum


# --- Internal ---

class BookingDraft(BaseModel):
    """
    A fully priced booking ready to be written by the Store.
    Built by the booking wizard or by BookingService from a BookingCreate.
    """
    mentor_id: UUID
    session_type: SessionTypeEnum
    scheduled_date: date
    scheduled_time: time
    duration: int = Field(0, ge=0)
    message: str
    total_amount: Decimal = Field(Decimal("0"), ge=0)
    add_recording: bool = False
    user_id: Optional[UUID] = None
    user_name: str
    user_email: str
    user_phone: Optional[str] = None


# --- API Input Models ---

class BookingCreate(BaseModel):
    """
    What the booking dialog posts. Price and duration are looked up
    server-side from the mentor's catalog; only the choice is sent.
    """
    mentor_id: UUID
    session_type: SessionTypeEnum
    duration: Optional[int] = Field(None, gt=0)
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    timezone: Optional[str] = None
    user_name: str = Field(..., min_length=1, max_length=255)
    user_email: EmailStr
    user_phone: Optional[str] = Field(None, max_length=64)
    purpose: str = Field(..., min_length=1)
    add_recording: bool = False
    use_free_demo: bool = False

    @field_validator('user_name', 'purpose')
    @classmethod
    def strip_required_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('must not be blank')
        return value


class BookingStatusUpdate(BaseModel):
    status: BookingStatusEnum


# --- API Output Models ---

class BookingRead(BaseModel):
    id: UUID
    expert_id: UUID
    user_id: Optional[UUID] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    user_phone: Optional[str] = None
    session_type: SessionTypeEnum
    scheduled_date: date
    scheduled_time: time
    duration: int
    message: Optional[str] = None
    total_amount: Decimal
    add_recording: bool
    status: BookingStatusEnum
    meeting_link: Optional[str] = None
    meeting_provider: Optional[MeetingProviderEnum] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BookingCreated(BaseModel):
    """Response to a successful booking: the record plus the message shown to the student."""
    booking: BookingRead
    notice: str
