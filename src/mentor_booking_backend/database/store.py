'''
BookingStore: the only component that talks to the database tables.
Services receive it through Depends (or a constructor arg in tests).
'''
from datetime import date
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..common.exceptions import BookingConflictError, StoreError
from ..common.logger import log
from ..models.booking import BookingDraft
from . import models as db_models
from .db_enums import ACTIVE_BOOKING_STATUSES, BookingStatusEnum
from .engine import get_db_session


def _is_unique_violation(error: IntegrityError) -> bool:
    text = str(error.orig).lower()
    return "unique" in text or "duplicate key" in text


class BookingStore:
    """
    Async persistence for availability rules, blocked dates, bookings and
    booking requests. Reads raise the underlying SQLAlchemy error so callers
    can decide to retry; writes raise StoreError (or BookingConflictError).
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error(f"Commit failed: {e}", exc_info=True)
            raise StoreError("We couldn't save your changes. Please try again.") from e

    async def reset(self) -> None:
        """Rolls back the current transaction so the session can be used again after a failure."""
        await self.db.rollback()

    # --- Mentors ---

    async def get_mentor(self, mentor_id: UUID) -> Optional[db_models.ExpertProfiles]:
        return await self.db.get(db_models.ExpertProfiles, mentor_id)

    # --- Availability rules ---

    async def list_availability_rules(self, mentor_id: UUID) -> list[db_models.AvailabilitySlots]:
        stmt = select(db_models.AvailabilitySlots).filter(
            db_models.AvailabilitySlots.expert_id == mentor_id
        ).order_by(
            db_models.AvailabilitySlots.day_of_week,
            db_models.AvailabilitySlots.start_time
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_availability_rule(self, rule_id: UUID) -> Optional[db_models.AvailabilitySlots]:
        return await self.db.get(db_models.AvailabilitySlots, rule_id)

    async def insert_availability_rules(
        self, rules: list[db_models.AvailabilitySlots]
    ) -> list[db_models.AvailabilitySlots]:
        """Inserts the whole batch in the current transaction; all or nothing."""
        try:
            self.db.add_all(rules)
            await self.db.flush()
            for rule in rules:
                await self.db.refresh(rule)
            return rules
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error(f"Failed to insert {len(rules)} availability rules: {e}", exc_info=True)
            raise StoreError("Could not save the availability slots.") from e

    async def delete_availability_rule(self, rule_id: UUID) -> bool:
        try:
            stmt = delete(db_models.AvailabilitySlots).where(db_models.AvailabilitySlots.id == rule_id)
            result = await self.db.execute(stmt)
            await self.db.flush()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error(f"Failed to delete availability rule {rule_id}: {e}", exc_info=True)
            raise StoreError("Could not delete the availability slot.") from e

    # --- Blocked dates ---

    async def list_blocked_date_rows(self, mentor_id: UUID) -> list[db_models.BlockedDates]:
        stmt = select(db_models.BlockedDates).filter(
            db_models.BlockedDates.expert_id == mentor_id
        ).order_by(db_models.BlockedDates.date)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_blocked_dates(self, mentor_id: UUID) -> list[date]:
        return [row.date for row in await self.list_blocked_date_rows(mentor_id)]

    async def is_date_blocked(self, mentor_id: UUID, target_date: date) -> bool:
        stmt = select(db_models.BlockedDates.id).filter(
            db_models.BlockedDates.expert_id == mentor_id,
            db_models.BlockedDates.date == target_date
        )
        result = await self.db.execute(stmt)
        return result.scalars().first() is not None

    async def insert_blocked_dates(self, blocked: list[db_models.BlockedDates]) -> list[db_models.BlockedDates]:
        try:
            self.db.add_all(blocked)
            await self.db.flush()
            for row in blocked:
                await self.db.refresh(row)
            return blocked
        except IntegrityError as e:
            await self.db.rollback()
            log.warning(f"Blocked date insert hit a constraint: {e}")
            raise StoreError("One of these dates is already blocked.") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error(f"Failed to insert blocked dates: {e}", exc_info=True)
            raise StoreError("Could not block the selected dates.") from e

    async def delete_blocked_date(self, mentor_id: UUID, target_date: date) -> bool:
        try:
            stmt = delete(db_models.BlockedDates).where(
                db_models.BlockedDates.expert_id == mentor_id,
                db_models.BlockedDates.date == target_date
            )
            result = await self.db.execute(stmt)
            await self.db.flush()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error(f"Failed to unblock {target_date} for mentor {mentor_id}: {e}", exc_info=True)
            raise StoreError("Could not unblock the date.") from e

    # --- Bookings ---

    async def list_bookings_for_mentor_between(self, mentor_id: UUID, start: date, end: date) -> list[db_models.Bookings]:
        """Pending and confirmed bookings with scheduled_date in [start, end]."""
        stmt = select(db_models.Bookings).filter(
            db_models.Bookings.expert_id == mentor_id,
            db_models.Bookings.scheduled_date >= start,
            db_models.Bookings.scheduled_date <= end,
            db_models.Bookings.status.in_(ACTIVE_BOOKING_STATUSES)
        ).order_by(db_models.Bookings.scheduled_date, db_models.Bookings.scheduled_time)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_booking(self, draft: BookingDraft) -> db_models.Bookings:
        booking = db_models.Bookings(
            expert_id=draft.mentor_id,
            user_id=draft.user_id,
            user_name=draft.user_name,
            user_email=draft.user_email,
            user_phone=draft.user_phone,
            session_type=draft.session_type.value,
            scheduled_date=draft.scheduled_date,
            scheduled_time=draft.scheduled_time,
            duration=draft.duration,
            message=draft.message,
            total_amount=draft.total_amount,
            add_recording=draft.add_recording,
            status=BookingStatusEnum.PENDING.value
        )
        try:
            self.db.add(booking)
            await self.db.flush()
            await self.db.refresh(booking)
            return booking
        except IntegrityError as e:
            await self.db.rollback()
            if _is_unique_violation(e):
                log.warning(
                    f"Slot {draft.scheduled_date} {draft.scheduled_time} for mentor {draft.mentor_id} was taken concurrently."
                )
                raise BookingConflictError("This time slot was just booked. Please pick another time.") from e
            log.error(f"Booking insert violated a constraint: {e}", exc_info=True)
            raise StoreError("We couldn't save your booking. Please try again.") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error(f"Failed to create booking: {e}", exc_info=True)
            raise StoreError("We couldn't save your booking. Please try again.") from e

    async def get_booking(self, booking_id: UUID) -> Optional[db_models.Bookings]:
        stmt = select(db_models.Bookings).options(
            selectinload(db_models.Bookings.expert)
        ).filter(db_models.Bookings.id == booking_id)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def update_booking_status(self, booking_id: UUID, status: str, **fields) -> Optional[db_models.Bookings]:
        """Sets the status plus any extra columns; returns None if the booking does not exist."""
        booking = await self.get_booking(booking_id)
        if booking is None:
            return None
        try:
            booking.status = status
            for key, value in fields.items():
                setattr(booking, key, value)
            await self.db.flush()
            await self.db.refresh(booking, ['status', 'updated_at'])
            return booking
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error(f"Failed to update booking {booking_id} to '{status}': {e}", exc_info=True)
            raise StoreError("Could not update the booking.") from e

    async def list_bookings_for_mentor(self, mentor_id: UUID) -> list[db_models.Bookings]:
        stmt = select(db_models.Bookings).options(
            selectinload(db_models.Bookings.expert)
        ).filter(
            db_models.Bookings.expert_id == mentor_id
        ).order_by(db_models.Bookings.scheduled_date.desc(), db_models.Bookings.scheduled_time.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_bookings_for_user(self, user_id: UUID) -> list[db_models.Bookings]:
        stmt = select(db_models.Bookings).options(
            selectinload(db_models.Bookings.expert)
        ).filter(
            db_models.Bookings.user_id == user_id
        ).order_by(db_models.Bookings.scheduled_date.desc(), db_models.Bookings.scheduled_time.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_bookings_needing_reminders(self, from_date: date, to_date: date) -> list[db_models.Bookings]:
        """Confirmed, scheduled bookings in [from_date, to_date] with at least one reminder unsent."""
        stmt = select(db_models.Bookings).options(
            selectinload(db_models.Bookings.expert)
        ).filter(
            db_models.Bookings.status == BookingStatusEnum.CONFIRMED.value,
            db_models.Bookings.duration > 0,
            db_models.Bookings.scheduled_date >= from_date,
            db_models.Bookings.scheduled_date <= to_date,
            (db_models.Bookings.reminder_24h_sent.is_(False)) | (db_models.Bookings.reminder_1h_sent.is_(False))
        ).order_by(db_models.Bookings.scheduled_date, db_models.Bookings.scheduled_time)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def mark_reminder_sent(self, booking: db_models.Bookings, kind: str) -> None:
        if kind not in ('24h', '1h'):
            raise ValueError(f"Unknown reminder kind: {kind}")
        try:
            setattr(booking, f"reminder_{kind}_sent", True)
            await self.db.flush()
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error(f"Failed to flag {kind} reminder on booking {booking.id}: {e}", exc_info=True)
            raise StoreError("Could not record the reminder.") from e

    # --- Booking requests ---

    async def insert_booking_request(self, request: db_models.BookingRequests) -> db_models.BookingRequests:
        try:
            self.db.add(request)
            await self.db.flush()
            await self.db.refresh(request)
            return request
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error(f"Failed to create booking request: {e}", exc_info=True)
            raise StoreError("Could not send the booking request.") from e

    async def get_booking_request(self, request_id: UUID) -> Optional[db_models.BookingRequests]:
        return await self.db.get(db_models.BookingRequests, request_id)

    async def list_booking_requests_for_mentee(self, mentee_id: UUID) -> list[db_models.BookingRequests]:
        stmt = select(db_models.BookingRequests).filter(
            db_models.BookingRequests.mentee_id == mentee_id
        ).order_by(db_models.BookingRequests.created_at.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_booking_requests_for_mentor(self, mentor_id: UUID) -> list[db_models.BookingRequests]:
        stmt = select(db_models.BookingRequests).filter(
            db_models.BookingRequests.mentor_id == mentor_id
        ).order_by(db_models.BookingRequests.created_at.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def update_booking_request(self, request: db_models.BookingRequests, **fields) -> db_models.BookingRequests:
        try:
            for key, value in fields.items():
                setattr(request, key, value)
            await self.db.flush()
            return request
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error(f"Failed to update booking request {request.id}: {e}", exc_info=True)
            raise StoreError("Could not update the booking request.") from e

    async def delete_booking_request(self, request_id: UUID) -> bool:
        try:
            stmt = delete(db_models.BookingRequests).where(db_models.BookingRequests.id == request_id)
            result = await self.db.execute(stmt)
            await self.db.flush()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error(f"Failed to delete booking request {request_id}: {e}", exc_info=True)
            raise StoreError("Could not delete the booking request.") from e
