'''
Booking creation and the booking status lifecycle.
'''
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status

from ..common.exceptions import (
    AvailabilityResolutionError,
    BookingConflictError,
    BookingValidationError,
    InvalidStatusTransition,
    InvalidWizardTransition,
    StoreError,
)
from ..common.logger import log
from ..core.booking_wizard import BookingWizard, WizardState, success_message
from ..core.time_intervals import format_minutes, to_minutes
from ..database import models as db_models
from ..database.db_enums import BookingStatusEnum, MeetingProviderEnum, SessionTypeEnum
from ..database.store import BookingStore
from ..models import booking as booking_models
from ..models.services import find_service, parse_service_catalog
from .availability_service import AvailabilityService
from .meeting_service import MeetingService
from .notification_service import NotificationKind, NotificationService, get_notification_service
from .security import CurrentUser

# Status changes a client may request. confirmed -> completed is backend only.
CLIENT_STATUS_TRANSITIONS: dict[str, set[str]] = {
    BookingStatusEnum.PENDING.value: {BookingStatusEnum.CONFIRMED.value, BookingStatusEnum.CANCELLED.value},
    BookingStatusEnum.CONFIRMED.value: set(),
    BookingStatusEnum.CANCELLED.value: set(),
    BookingStatusEnum.COMPLETED.value: set(),
}


def check_client_transition(current: str, new: str) -> None:
    if new not in CLIENT_STATUS_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransition(f"A {current} booking cannot be changed to {new}.")


class BookingService:
    """
    Service for all business logic related to bookings.
    Also the gateway the booking wizard submits its drafts to.
    """
    def __init__(
        self,
        store: Annotated[BookingStore, Depends(BookingStore)],
        availability: Annotated[AvailabilityService, Depends(AvailabilityService)],
        notifications: Annotated[NotificationService, Depends(get_notification_service)],
        meetings: Annotated[MeetingService, Depends(MeetingService)],
    ):
        self.store = store
        self.availability = availability
        self.notifications = notifications
        self.meetings = meetings

    # --- Internal Helpers ---

    async def _get_booking_or_404(self, booking_id: UUID) -> db_models.Bookings:
        booking = await self.store.get_booking(booking_id)
        if not booking:
            log.warning(f"Tried to fetch non-existing booking: {booking_id}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found.")
        return booking

    def _notify(self, kind: NotificationKind, booking: db_models.Bookings, mentor: Optional[db_models.ExpertProfiles]) -> None:
        try:
            self.notifications.notify(kind, booking, mentor)
        except Exception as e:
            log.error(f"Could not queue '{kind.value}' notification for booking {booking.id}: {e}", exc_info=True)

    async def _ensure_slot_available(self, draft: booking_models.BookingDraft) -> None:
        """Server-side re-check that the requested start time is still free."""
        slots = await self.availability.get_slots(draft.mentor_id, draft.scheduled_date, draft.duration)
        wanted = format_minutes(to_minutes(draft.scheduled_time))
        slot = next((s for s in slots if s.time == wanted), None)
        if slot is None:
            raise BookingValidationError(
                "The selected time is not available. Please pick another time.",
                fields=["scheduled_date", "scheduled_time"]
            )
        if slot.booked:
            raise BookingConflictError("This time slot was just booked. Please pick another time.")
        if not slot.available:
            raise BookingValidationError(
                "The selected time has already passed. Please pick another time.",
                fields=["scheduled_time"]
            )

    # --- Gateway ---

    async def create_booking(self, draft: booking_models.BookingDraft) -> db_models.Bookings:
        """
        Persists `draft` as a pending booking and queues the student and
        mentor emails. Scheduled sessions are re-checked against live
        availability first.
        """
        mentor = await self.store.get_mentor(draft.mentor_id)
        if not mentor:
            raise BookingValidationError("This mentor no longer exists.", fields=["mentor_id"])

        if draft.duration > 0:
            await self._ensure_slot_available(draft)

        booking = await self.store.create_booking(draft)
        await self.store.commit()
        log.info(f"Booking {booking.id} created for mentor {mentor.id} ({draft.session_type.value} on {draft.scheduled_date} {draft.scheduled_time})")

        self._notify(NotificationKind.BOOKING_CREATED, booking, mentor)
        return booking

    # --- Public Write Methods (API-Facing) ---

    async def create_booking_for_api(
        self,
        data: booking_models.BookingCreate,
        current_user: Optional[CurrentUser],
    ) -> booking_models.BookingCreated:
        """
        Prices the chosen service from the mentor's catalog, walks the
        booking wizard to its confirmation step and submits the draft.
        """
        log.info(f"Booking request for mentor {data.mentor_id}: {data.session_type.value}")
        try:
            mentor = await self.store.get_mentor(data.mentor_id)
            if not mentor:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mentor not found.")

            service = find_service(parse_service_catalog(mentor.service_pricing), data.session_type, data.duration)
            if service is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="This mentor does not offer this service (or this session length)."
                )
            if data.use_free_demo and service.has_free_demo:
                service = service.model_copy(update={"price": Decimal("0")})

            wizard = BookingWizard(
                mentor_id=mentor.id,
                gateway=self,
                resolver=self.availability,
                mentor_timezone=mentor.timezone,
                user_id=current_user.id if current_user else None,
            )
            wizard.open()
            wizard.select_service(service)
            if wizard.state == WizardState.SELECTING_DATE_TIME:
                wizard.select_date_time(data.scheduled_date, data.scheduled_time, data.timezone or wizard.mentor_timezone)
            if wizard.state != WizardState.CONFIRMING:
                raise BookingValidationError(
                    "Please choose a date and time for this session.",
                    fields=["scheduled_date", "scheduled_time"]
                )

            draft = wizard.build_draft(
                name=data.user_name,
                email=data.user_email,
                purpose=data.purpose,
                phone=data.user_phone,
                add_recording=data.add_recording,
            )
            booking = await self.create_booking(draft)
            return booking_models.BookingCreated(
                booking=booking_models.BookingRead.model_validate(booking),
                notice=success_message(draft.session_type),
            )

        except HTTPException:
            raise
        except BookingConflictError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        except (BookingValidationError, InvalidWizardTransition) as e:
            log.warning(f"Rejected booking for mentor {data.mentor_id}: {e}")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=getattr(e, "message", None) or str(e))
        except AvailabilityResolutionError as e:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
        except StoreError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        except Exception as e:
            log.error(f"Error in create_booking_for_api for mentor {data.mentor_id}: {e}", exc_info=True)
            raise

    async def update_status_for_api(
        self,
        booking_id: UUID,
        data: booking_models.BookingStatusUpdate,
        current_user: CurrentUser,
    ) -> booking_models.BookingRead:
        """
        Mentors accept (confirm) or decline (cancel) a pending booking; the
        student who booked may cancel it. Confirming a video session
        attaches a meeting link.
        """
        new_status = data.status.value
        log.info(f"User {current_user.id} setting booking {booking_id} to '{new_status}'")
        try:
            booking = await self._get_booking_or_404(booking_id)
            is_mentor = booking.expert_id == current_user.id
            is_student = booking.user_id is not None and booking.user_id == current_user.id
            if not (is_mentor or is_student):
                log.warning(f"SECURITY: User {current_user.id} tried to manage booking {booking_id}.")
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You are not authorized to manage this session."
                )
            if new_status == BookingStatusEnum.CONFIRMED.value and not is_mentor:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only mentors can confirm sessions.")

            check_client_transition(booking.status, new_status)

            fields = {}
            if new_status == BookingStatusEnum.CONFIRMED.value and booking.session_type == SessionTypeEnum.ONE_ON_ONE.value:
                mentor_name = booking.expert.full_name if booking.expert else ""
                meeting = self.meetings.create_meeting(mentor_name, booking.id, MeetingProviderEnum.JITSI)
                fields = {"meeting_link": str(meeting.meeting_link), "meeting_provider": meeting.provider.value}

            updated = await self.store.update_booking_status(booking_id, new_status, **fields)
            await self.store.commit()

            kind = NotificationKind.BOOKING_CONFIRMED if new_status == BookingStatusEnum.CONFIRMED.value else NotificationKind.BOOKING_CANCELLED
            self._notify(kind, updated, updated.expert)
            return booking_models.BookingRead.model_validate(updated)

        except HTTPException:
            raise
        except InvalidStatusTransition as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        except StoreError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        except Exception as e:
            log.error(f"Error in update_status_for_api for booking {booking_id}: {e}", exc_info=True)
            raise

    async def complete_booking_for_api(self, booking_id: UUID, current_user: CurrentUser) -> booking_models.BookingRead:
        """The mentor marks a confirmed session as held."""
        booking = await self._get_booking_or_404(booking_id)
        if booking.expert_id != current_user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only mentors can mark sessions as complete."
            )
        if booking.status != BookingStatusEnum.CONFIRMED.value:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"A {booking.status} booking cannot be completed."
            )
        try:
            updated = await self.store.update_booking_status(booking_id, BookingStatusEnum.COMPLETED.value)
            await self.store.commit()
        except StoreError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        log.info(f"Booking {booking_id} completed by mentor {current_user.id}")
        return booking_models.BookingRead.model_validate(updated)

    # --- Public Read Methods (API-Facing) ---

    async def get_booking_for_api(self, booking_id: UUID, current_user: CurrentUser) -> booking_models.BookingRead:
        booking = await self._get_booking_or_404(booking_id)
        if current_user.id not in (booking.expert_id, booking.user_id):
            log.warning(f"SECURITY: User {current_user.id} tried to read booking {booking_id}.")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to view this booking."
            )
        return booking_models.BookingRead.model_validate(booking)

    async def list_my_bookings_for_api(self, current_user: CurrentUser, as_mentor: bool = False) -> list[booking_models.BookingRead]:
        """Bookings the user made, or with `as_mentor` the bookings made with them."""
        if as_mentor:
            bookings = await self.store.list_bookings_for_mentor(current_user.id)
        else:
            bookings = await self.store.list_bookings_for_user(current_user.id)
        return [booking_models.BookingRead.model_validate(b) for b in bookings]
