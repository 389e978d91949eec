from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Enum, ForeignKeyConstraint, Index, Integer, JSON, Numeric, PrimaryKeyConstraint, SmallInteger, String, Text, Time, UniqueConstraint, Uuid, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import decimal
import uuid

class Base(DeclarativeBase):
    pass


SESSION_TYPE_ENUM = Enum('oneOnOneSession', 'chatAdvice', 'digitalProducts', 'notes', name='session_type_enum')
BOOKING_STATUS_ENUM = Enum('pending', 'confirmed', 'completed', 'cancelled', name='booking_status_enum')
MEETING_PROVIDER_ENUM = Enum('jitsi', 'zoom', 'google_meet', name='meeting_provider_enum')
BOOKING_REQUEST_STATUS_ENUM = Enum('pending', 'approved', 'declined', name='booking_request_status_enum')

ACTIVE_SLOT_PREDICATE = "status IN ('pending', 'confirmed') AND duration > 0"


class ExpertProfiles(Base):
    __tablename__ = 'expert_profiles'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='expert_profiles_pkey'),
        UniqueConstraint('username', name='expert_profiles_username_key')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name: Mapped[str] = mapped_column(Text)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    username: Mapped[Optional[str]] = mapped_column(String(255))
    timezone: Mapped[str] = mapped_column(Text, server_default=text("'Asia/Kolkata'"))
    service_pricing: Mapped[Optional[dict]] = mapped_column(JSON().with_variant(JSONB, 'postgresql'))
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now())

    availability_slots: Mapped[list['AvailabilitySlots']] = relationship(
        'AvailabilitySlots',
        back_populates='expert',
        cascade='all, delete-orphan'
    )
    blocked_dates: Mapped[list['BlockedDates']] = relationship(
        'BlockedDates',
        back_populates='expert',
        cascade='all, delete-orphan'
    )
    bookings: Mapped[list['Bookings']] = relationship('Bookings', back_populates='expert')


class AvailabilitySlots(Base):
    __tablename__ = 'availability_slots'
    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='availability_slots_day_of_week_check'),
        CheckConstraint('start_time <> end_time', name='availability_slots_non_empty_check'),
        CheckConstraint(
            '(is_recurring AND specific_date IS NULL) OR (NOT is_recurring AND specific_date IS NOT NULL)',
            name='availability_slots_recurring_xor_date'
        ),
        ForeignKeyConstraint(['expert_id'], ['expert_profiles.id'], ondelete='CASCADE', name='availability_slots_expert_id_fkey'),
        PrimaryKeyConstraint('id', name='availability_slots_pkey'),
        Index('idx_availability_slots_expert_id', 'expert_id'),
        Index('idx_availability_slots_expert_date', 'expert_id', 'specific_date')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    expert_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    day_of_week: Mapped[int] = mapped_column(SmallInteger)
    start_time: Mapped[datetime.time] = mapped_column(Time)
    end_time: Mapped[datetime.time] = mapped_column(Time)
    is_recurring: Mapped[bool] = mapped_column(Boolean, server_default=text('true'))
    specific_date: Mapped[Optional[datetime.date]] = mapped_column(Date)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now())

    expert: Mapped['ExpertProfiles'] = relationship('ExpertProfiles', back_populates='availability_slots')


class BlockedDates(Base):
    __tablename__ = 'blocked_dates'
    __table_args__ = (
        ForeignKeyConstraint(['expert_id'], ['expert_profiles.id'], ondelete='CASCADE', name='blocked_dates_expert_id_fkey'),
        PrimaryKeyConstraint('id', name='blocked_dates_pkey'),
        UniqueConstraint('expert_id', 'date', name='blocked_dates_expert_id_date_key')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    expert_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    date: Mapped[datetime.date] = mapped_column(Date)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now())

    expert: Mapped['ExpertProfiles'] = relationship('ExpertProfiles', back_populates='blocked_dates')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        CheckConstraint('duration >= 0', name='bookings_duration_check'),
        ForeignKeyConstraint(['expert_id'], ['expert_profiles.id'], ondelete='CASCADE', name='bookings_expert_id_fkey'),
        PrimaryKeyConstraint('id', name='bookings_pkey'),
        Index('idx_bookings_expert_date', 'expert_id', 'scheduled_date'),
        Index('idx_bookings_user_id', 'user_id'),
        # One active scheduled booking per mentor start time.
        Index(
            'uq_bookings_active_slot', 'expert_id', 'scheduled_date', 'scheduled_time',
            unique=True,
            postgresql_where=text(ACTIVE_SLOT_PREDICATE),
            sqlite_where=text(ACTIVE_SLOT_PREDICATE)
        )
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    expert_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    session_type: Mapped[str] = mapped_column(SESSION_TYPE_ENUM)
    scheduled_date: Mapped[datetime.date] = mapped_column(Date)
    scheduled_time: Mapped[datetime.time] = mapped_column(Time)
    duration: Mapped[int] = mapped_column(Integer, server_default=text('0'))
    total_amount: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2), server_default=text('0'))
    status: Mapped[str] = mapped_column(BOOKING_STATUS_ENUM, server_default=text("'pending'"))
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    user_name: Mapped[Optional[str]] = mapped_column(Text)
    user_email: Mapped[Optional[str]] = mapped_column(String(255))
    user_phone: Mapped[Optional[str]] = mapped_column(String(64))
    message: Mapped[Optional[str]] = mapped_column(Text)
    add_recording: Mapped[bool] = mapped_column(Boolean, server_default=text('false'))
    meeting_link: Mapped[Optional[str]] = mapped_column(Text)
    meeting_provider: Mapped[Optional[str]] = mapped_column(MEETING_PROVIDER_ENUM)
    reminder_24h_sent: Mapped[bool] = mapped_column(Boolean, server_default=text('false'))
    reminder_1h_sent: Mapped[bool] = mapped_column(Boolean, server_default=text('false'))
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now())
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now(), onupdate=func.now())

    expert: Mapped['ExpertProfiles'] = relationship('ExpertProfiles', back_populates='bookings')


class BookingRequests(Base):
    __tablename__ = 'booking_requests'
    __table_args__ = (
        ForeignKeyConstraint(['mentor_id'], ['expert_profiles.id'], ondelete='CASCADE', name='booking_requests_mentor_id_fkey'),
        PrimaryKeyConstraint('id', name='booking_requests_pkey'),
        Index('idx_booking_requests_mentee_id', 'mentee_id'),
        Index('idx_booking_requests_mentor_id', 'mentor_id')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    mentor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    mentee_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    requested_date: Mapped[datetime.date] = mapped_column(Date)
    requested_start_time: Mapped[datetime.time] = mapped_column(Time)
    requested_end_time: Mapped[datetime.time] = mapped_column(Time)
    status: Mapped[str] = mapped_column(BOOKING_REQUEST_STATUS_ENUM, server_default=text("'pending'"))
    message: Mapped[Optional[str]] = mapped_column(Text)
    mentor_response: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now())

    mentor: Mapped['ExpertProfiles'] = relationship('ExpertProfiles')
