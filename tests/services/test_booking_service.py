'''
Tests for the BookingService, on a mocked BookingStore and NotificationService.
'''
import pytest
from datetime import date, time
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

from fastapi import HTTPException

from mentor_booking_backend.common.exceptions import (
    AvailabilityResolutionError,
    BookingConflictError,
    InvalidStatusTransition,
)
from mentor_booking_backend.database import models as db_models
from mentor_booking_backend.database.db_enums import BookingStatusEnum, SessionTypeEnum
from mentor_booking_backend.models import booking as booking_models
from mentor_booking_backend.models.availability import TimeSlot
from mentor_booking_backend.services.booking_service import BookingService, check_client_transition
from mentor_booking_backend.services.notification_service import NotificationKind
from mentor_booking_backend.services.security import CurrentUser
from tests.constants import TEST_BOOKING_ID, TEST_MENTOR_ID, TEST_OTHER_STUDENT_ID, TEST_STUDENT_ID

SESSION_DATE = date(2026, 3, 9)


def persisted(draft: booking_models.BookingDraft) -> db_models.Bookings:
    """What the store hands back after inserting `draft`."""
    return db_models.Bookings(
        id=uuid4(),
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
        status=BookingStatusEnum.PENDING.value,
    )


def existing_booking(mentor, status: str = BookingStatusEnum.PENDING.value, session_type: str = SessionTypeEnum.ONE_ON_ONE.value) -> db_models.Bookings:
    return db_models.Bookings(
        id=TEST_BOOKING_ID,
        expert_id=TEST_MENTOR_ID,
        expert=mentor,
        user_id=TEST_STUDENT_ID,
        user_name="Asha",
        user_email="asha@example.com",
        session_type=session_type,
        scheduled_date=SESSION_DATE,
        scheduled_time=time(10, 0),
        duration=60,
        message="Interview prep",
        total_amount=Decimal("500"),
        add_recording=False,
        status=status,
    )


def apply_update(booking: db_models.Bookings):
    async def update(booking_id, status, **fields):
        booking.status = status
        for key, value in fields.items():
            setattr(booking, key, value)
        return booking
    return update


def call_request(**overrides) -> booking_models.BookingCreate:
    data = {
        "mentor_id": TEST_MENTOR_ID,
        "session_type": SessionTypeEnum.ONE_ON_ONE.value,
        "duration": 30,
        "scheduled_date": SESSION_DATE,
        "scheduled_time": "10:00",
        "timezone": "Asia/Kolkata",
        "user_name": "Asha",
        "user_email": "asha@example.com",
        "purpose": "Interview prep",
    }
    data.update(overrides)
    return booking_models.BookingCreate(**data)


@pytest.fixture
def open_slot(mocker, booking_service: BookingService):
    return mocker.patch.object(
        booking_service.availability,
        "get_slots",
        new_callable=AsyncMock,
        return_value=[TimeSlot(time="09:30", available=True), TimeSlot(time="10:00", available=True)],
    )


@pytest.fixture
def bookable_store(mock_store, mentor_profile):
    mock_store.get_mentor.return_value = mentor_profile
    mock_store.create_booking.side_effect = persisted
    return mock_store


@pytest.mark.anyio
class TestCreateBooking:

    async def test_one_on_one_booking_is_pending(self, booking_service: BookingService, bookable_store, open_slot, mock_notifications, student_user):
        created = await booking_service.create_booking_for_api(call_request(), student_user)

        assert created.notice == "Booking created successfully!"
        assert created.booking.status == BookingStatusEnum.PENDING
        assert created.booking.total_amount == Decimal("500")
        assert created.booking.duration == 30
        assert created.booking.user_id == TEST_STUDENT_ID
        open_slot.assert_awaited_once_with(TEST_MENTOR_ID, SESSION_DATE, 30)
        bookable_store.commit.assert_awaited_once()
        mock_notifications.notify.assert_called_once()
        assert mock_notifications.notify.call_args.args[0] == NotificationKind.BOOKING_CREATED

    async def test_guest_booking(self, booking_service: BookingService, bookable_store, open_slot):
        created = await booking_service.create_booking_for_api(call_request(), None)
        assert created.booking.user_id is None

    async def test_recording_add_on(self, booking_service: BookingService, bookable_store, open_slot, student_user):
        created = await booking_service.create_booking_for_api(call_request(add_recording=True), student_user)
        assert created.booking.total_amount == Decimal("800")

    async def test_free_demo(self, booking_service: BookingService, bookable_store, open_slot, student_user):
        created = await booking_service.create_booking_for_api(call_request(use_free_demo=True), student_user)
        assert created.booking.total_amount == Decimal("0")

    async def test_chat_advice_needs_no_slot(self, booking_service: BookingService, bookable_store, open_slot, student_user):
        data = call_request(session_type=SessionTypeEnum.CHAT_ADVICE.value, duration=None, scheduled_date=None, scheduled_time=None)

        created = await booking_service.create_booking_for_api(data, student_user)

        assert created.notice == "Message sent successfully!"
        assert created.booking.duration == 0
        assert created.booking.scheduled_time == time(0, 0)
        assert created.booking.total_amount == Decimal("200")
        open_slot.assert_not_awaited()

    async def test_digital_product_notice(self, booking_service: BookingService, bookable_store, student_user):
        data = call_request(session_type=SessionTypeEnum.DIGITAL_PRODUCTS.value, duration=None)
        created = await booking_service.create_booking_for_api(data, student_user)
        assert created.notice == "Purchase successful!"

    async def test_slot_taken_is_409(self, booking_service: BookingService, bookable_store, open_slot, mock_notifications, student_user):
        open_slot.return_value = [TimeSlot(time="10:00", available=False, booked=True)]

        with pytest.raises(HTTPException) as exc_info:
            await booking_service.create_booking_for_api(call_request(), student_user)

        assert exc_info.value.status_code == 409
        bookable_store.create_booking.assert_not_awaited()
        mock_notifications.notify.assert_not_called()

    async def test_slot_not_offered_is_400(self, booking_service: BookingService, bookable_store, open_slot, student_user):
        with pytest.raises(HTTPException) as exc_info:
            await booking_service.create_booking_for_api(call_request(scheduled_time="13:15"), student_user)
        assert exc_info.value.status_code == 400

    async def test_concurrent_insert_is_409(self, booking_service: BookingService, bookable_store, open_slot, mock_notifications, student_user):
        bookable_store.create_booking.side_effect = BookingConflictError("This time slot was just booked. Please pick another time.")

        with pytest.raises(HTTPException) as exc_info:
            await booking_service.create_booking_for_api(call_request(), student_user)

        assert exc_info.value.status_code == 409
        assert exc_info.value.detail == "This time slot was just booked. Please pick another time."
        mock_notifications.notify.assert_not_called()

    async def test_availability_failure_is_503(self, booking_service: BookingService, bookable_store, open_slot, student_user):
        open_slot.side_effect = AvailabilityResolutionError("We couldn't load available times. Please try again.")

        with pytest.raises(HTTPException) as exc_info:
            await booking_service.create_booking_for_api(call_request(), student_user)
        assert exc_info.value.status_code == 503

    async def test_missing_date_is_400(self, booking_service: BookingService, bookable_store, open_slot, student_user):
        with pytest.raises(HTTPException) as exc_info:
            await booking_service.create_booking_for_api(call_request(scheduled_time=None), student_user)
        assert exc_info.value.status_code == 400

    async def test_service_not_offered_is_400(self, booking_service: BookingService, bookable_store, student_user):
        data = call_request(session_type=SessionTypeEnum.NOTES.value, duration=None)
        with pytest.raises(HTTPException) as exc_info:
            await booking_service.create_booking_for_api(data, student_user)
        assert exc_info.value.status_code == 400

    async def test_unknown_duration_is_400(self, booking_service: BookingService, bookable_store, student_user):
        with pytest.raises(HTTPException) as exc_info:
            await booking_service.create_booking_for_api(call_request(duration=45), student_user)
        assert exc_info.value.status_code == 400

    async def test_unknown_mentor_is_404(self, booking_service: BookingService, mock_store, student_user):
        mock_store.get_mentor.return_value = None
        with pytest.raises(HTTPException) as exc_info:
            await booking_service.create_booking_for_api(call_request(), student_user)
        assert exc_info.value.status_code == 404

    async def test_notification_failure_does_not_fail_the_booking(self, booking_service: BookingService, bookable_store, open_slot, mock_notifications, student_user):
        mock_notifications.notify.side_effect = RuntimeError("queue closed")

        created = await booking_service.create_booking_for_api(call_request(), student_user)

        assert created.booking.status == BookingStatusEnum.PENDING


@pytest.mark.anyio
class TestStatusLifecycle:

    async def test_mentor_confirms_and_gets_a_meeting_link(self, booking_service: BookingService, mock_store, mentor_profile, mock_notifications, mentor_user):
        booking = existing_booking(mentor_profile)
        mock_store.get_booking.return_value = booking
        mock_store.update_booking_status.side_effect = apply_update(booking)

        updated = await booking_service.update_status_for_api(
            TEST_BOOKING_ID, booking_models.BookingStatusUpdate(status="confirmed"), mentor_user
        )

        assert updated.status == BookingStatusEnum.CONFIRMED
        assert updated.meeting_link.startswith("https://meet.jit.si/")
        assert updated.meeting_provider.value == "jitsi"
        mock_store.commit.assert_awaited_once()
        assert mock_notifications.notify.call_args.args[0] == NotificationKind.BOOKING_CONFIRMED

    async def test_confirming_chat_advice_has_no_meeting_link(self, booking_service: BookingService, mock_store, mentor_profile, mentor_user):
        booking = existing_booking(mentor_profile, session_type=SessionTypeEnum.CHAT_ADVICE.value)
        mock_store.get_booking.return_value = booking
        mock_store.update_booking_status.side_effect = apply_update(booking)

        updated = await booking_service.update_status_for_api(
            TEST_BOOKING_ID, booking_models.BookingStatusUpdate(status="confirmed"), mentor_user
        )

        assert updated.meeting_link is None

    async def test_student_cannot_confirm(self, booking_service: BookingService, mock_store, mentor_profile, student_user):
        mock_store.get_booking.return_value = existing_booking(mentor_profile)

        with pytest.raises(HTTPException) as exc_info:
            await booking_service.update_status_for_api(
                TEST_BOOKING_ID, booking_models.BookingStatusUpdate(status="confirmed"), student_user
            )
        assert exc_info.value.status_code == 403

    async def test_student_cancels(self, booking_service: BookingService, mock_store, mentor_profile, mock_notifications, student_user):
        booking = existing_booking(mentor_profile)
        mock_store.get_booking.return_value = booking
        mock_store.update_booking_status.side_effect = apply_update(booking)

        updated = await booking_service.update_status_for_api(
            TEST_BOOKING_ID, booking_models.BookingStatusUpdate(status="cancelled"), student_user
        )

        assert updated.status == BookingStatusEnum.CANCELLED
        assert mock_notifications.notify.call_args.args[0] == NotificationKind.BOOKING_CANCELLED

    async def test_confirmed_booking_cannot_be_cancelled(self, booking_service: BookingService, mock_store, mentor_profile, mentor_user):
        mock_store.get_booking.return_value = existing_booking(mentor_profile, status=BookingStatusEnum.CONFIRMED.value)

        with pytest.raises(HTTPException) as exc_info:
            await booking_service.update_status_for_api(
                TEST_BOOKING_ID, booking_models.BookingStatusUpdate(status="cancelled"), mentor_user
            )
        assert exc_info.value.status_code == 409
        mock_store.update_booking_status.assert_not_awaited()

    async def test_stranger_is_403(self, booking_service: BookingService, mock_store, mentor_profile):
        mock_store.get_booking.return_value = existing_booking(mentor_profile)

        with pytest.raises(HTTPException) as exc_info:
            await booking_service.update_status_for_api(
                TEST_BOOKING_ID,
                booking_models.BookingStatusUpdate(status="cancelled"),
                CurrentUser(id=TEST_OTHER_STUDENT_ID),
            )
        assert exc_info.value.status_code == 403

    async def test_missing_booking_is_404(self, booking_service: BookingService, mock_store, mentor_user):
        mock_store.get_booking.return_value = None

        with pytest.raises(HTTPException) as exc_info:
            await booking_service.update_status_for_api(
                TEST_BOOKING_ID, booking_models.BookingStatusUpdate(status="cancelled"), mentor_user
            )
        assert exc_info.value.status_code == 404

    async def test_mentor_completes_confirmed_session(self, booking_service: BookingService, mock_store, mentor_profile, mentor_user):
        booking = existing_booking(mentor_profile, status=BookingStatusEnum.CONFIRMED.value)
        mock_store.get_booking.return_value = booking
        mock_store.update_booking_status.side_effect = apply_update(booking)

        updated = await booking_service.complete_booking_for_api(TEST_BOOKING_ID, mentor_user)

        assert updated.status == BookingStatusEnum.COMPLETED

    async def test_pending_session_cannot_be_completed(self, booking_service: BookingService, mock_store, mentor_profile, mentor_user):
        mock_store.get_booking.return_value = existing_booking(mentor_profile)

        with pytest.raises(HTTPException) as exc_info:
            await booking_service.complete_booking_for_api(TEST_BOOKING_ID, mentor_user)
        assert exc_info.value.status_code == 409

    async def test_student_reads_own_booking(self, booking_service: BookingService, mock_store, mentor_profile, student_user):
        mock_store.get_booking.return_value = existing_booking(mentor_profile)

        booking = await booking_service.get_booking_for_api(TEST_BOOKING_ID, student_user)

        assert booking.id == TEST_BOOKING_ID

    async def test_list_as_mentor(self, booking_service: BookingService, mock_store, mentor_profile, mentor_user):
        mock_store.list_bookings_for_mentor.return_value = [existing_booking(mentor_profile)]

        bookings = await booking_service.list_my_bookings_for_api(mentor_user, as_mentor=True)

        assert len(bookings) == 1
        mock_store.list_bookings_for_mentor.assert_awaited_once_with(TEST_MENTOR_ID)
        mock_store.list_bookings_for_user.assert_not_awaited()


class TestClientTransitions:

    @pytest.mark.parametrize("current, new", [
        ("pending", "confirmed"),
        ("pending", "cancelled"),
    ])
    def test_allowed(self, current, new):
        check_client_transition(current, new)

    @pytest.mark.parametrize("current, new", [
        ("pending", "completed"),
        ("pending", "pending"),
        ("confirmed", "cancelled"),
        ("confirmed", "completed"),
        ("cancelled", "confirmed"),
        ("completed", "cancelled"),
    ])
    def test_rejected(self, current, new):
        with pytest.raises(InvalidStatusTransition):
            check_client_transition(current, new)
