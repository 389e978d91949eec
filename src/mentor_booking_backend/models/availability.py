'''
Pydantic models for availability rules, blocked dates and resolved slots.
'''
from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


# --- Availability rules ---

class AvailabilityRuleInput(BaseModel):
    """One proposed window. end_time earlier than start_time means it ends the next day."""
    start_time: time
    end_time: time


class AvailabilityRulesCreate(BaseModel):
    """
    A batch of proposed windows for one calendar date.
    Recurring batches repeat every week on that date's weekday; otherwise
    they apply to that date only.
    """
    date: date
    is_recurring: bool = False
    slots: list[AvailabilityRuleInput] = Field(..., min_length=1)


class AvailabilityRuleRead(BaseModel):
    id: UUID
    expert_id: UUID
    day_of_week: int = Field(..., ge=0, le=6)  # 0=Sunday
    start_time: time
    end_time: time
    is_recurring: bool
    specific_date: Optional[date] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# --- Blocked dates ---

class BlockedDateCreate(BaseModel):
    """Blocks `date`, or every day from `date` to `end_date` inclusive."""
    date: date
    end_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=500)

    @model_validator(mode='after')
    def validate_range(self) -> 'BlockedDateCreate':
        if self.end_date is not None and self.end_date < self.date:
            raise ValueError('end_date cannot be before date')
        return self


class BlockedDateRead(BaseModel):
    id: UUID
    expert_id: UUID
    date: date
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# --- Resolved slots ---

class TimeSlot(BaseModel):
    time: str  # HH:MM, mentor's local time
    available: bool
    booked: bool = False

    model_config = ConfigDict(frozen=True)


class SlotResolution(BaseModel):
    """Outcome of a slot lookup. `ok=False` is a failed read, not an empty day."""
    ok: bool
    slots: list[TimeSlot] = Field(default_factory=list)
    error: Optional[str] = None


class SlotGroups(BaseModel):
    morning: list[TimeSlot] = Field(default_factory=list)
    afternoon: list[TimeSlot] = Field(default_factory=list)
    evening: list[TimeSlot] = Field(default_factory=list)


class SlotsRead(BaseModel):
    mentor_id: UUID
    date: date
    duration: int
    timezone: str
    slots: list[TimeSlot]
    groups: SlotGroups


class AvailableDatesRead(BaseModel):
    mentor_id: UUID
    duration: int
    dates: list[date]
    first_available: Optional[date] = None


class CalendarDayRead(BaseModel):
    """One day of the mentor's month overview."""
    date: date
    is_blocked: bool
    rules: list[AvailabilityRuleRead] = Field(default_factory=list)
