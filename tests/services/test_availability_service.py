'''
Tests for the AvailabilityService, on a mocked BookingStore.
'''
import pytest
from datetime import date, datetime, time, timezone
from uuid import uuid4

from fastapi import HTTPException
from sqlalchemy.exc import OperationalError

from mentor_booking_backend.common.config import settings
from mentor_booking_backend.common.exceptions import AvailabilityResolutionError, StoreError
from mentor_booking_backend.database import models as db_models
from mentor_booking_backend.database.db_enums import BookingStatusEnum, SessionTypeEnum
from mentor_booking_backend.models import availability as availability_models
from mentor_booking_backend.services.availability_service import AvailabilityService
from tests.constants import TEST_MENTOR_ID, TEST_OTHER_MENTOR_ID, TEST_RULE_ID

NOW_UTC = datetime(2026, 3, 2, 3, 30, tzinfo=timezone.utc)  # Monday 09:00 in Asia/Kolkata
TODAY = date(2026, 3, 2)
NEXT_MONDAY = date(2026, 3, 9)


def weekly(day_of_week: int, start: time, end: time, expert_id=TEST_MENTOR_ID) -> db_models.AvailabilitySlots:
    return db_models.AvailabilitySlots(
        id=uuid4(),
        expert_id=expert_id,
        day_of_week=day_of_week,
        start_time=start,
        end_time=end,
        is_recurring=True,
        specific_date=None,
    )


def with_ids(rows):
    for row in rows:
        row.id = uuid4()
    return rows


def transient_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, ConnectionError("connection lost"))


@pytest.fixture
def no_backoff(mocker):
    mocker.patch.object(settings, "READ_RETRY_BASE_DELAY_SECONDS", 0)


@pytest.fixture
def monday_store(mock_store, mentor_profile):
    """Mentor available 09:00-17:00 every Monday, nothing blocked or booked."""
    mock_store.get_mentor.return_value = mentor_profile
    mock_store.list_availability_rules.return_value = [weekly(1, time(9, 0), time(17, 0))]
    mock_store.list_blocked_dates.return_value = []
    mock_store.list_bookings_for_mentor_between.return_value = []
    return mock_store


@pytest.mark.anyio
class TestResolve:

    async def test_resolves_slots_with_bookings(self, availability_service: AvailabilityService, monday_store):
        monday_store.list_bookings_for_mentor_between.return_value = [
            db_models.Bookings(
                expert_id=TEST_MENTOR_ID,
                session_type=SessionTypeEnum.ONE_ON_ONE.value,
                scheduled_date=NEXT_MONDAY,
                scheduled_time=time(11, 0),
                duration=60,
                status=BookingStatusEnum.CONFIRMED.value,
            )
        ]

        resolution = await availability_service.resolve(TEST_MENTOR_ID, NEXT_MONDAY, 60, now=NOW_UTC)

        assert resolution.ok is True
        assert len(resolution.slots) == 8
        assert [s.time for s in resolution.slots if s.booked] == ["11:00"]
        monday_store.list_bookings_for_mentor_between.assert_awaited_once_with(
            TEST_MENTOR_ID, date(2026, 3, 8), date(2026, 3, 10)
        )

    async def test_booking_from_the_previous_evening_blocks_early_slots(self, availability_service: AvailabilityService, monday_store):
        monday_store.list_availability_rules.return_value = [
            weekly(1, time(22, 0), time(23, 59)),
            weekly(2, time(0, 0), time(3, 0)),
        ]
        monday_store.list_bookings_for_mentor_between.return_value = [
            db_models.Bookings(
                expert_id=TEST_MENTOR_ID,
                session_type=SessionTypeEnum.ONE_ON_ONE.value,
                scheduled_date=NEXT_MONDAY,
                scheduled_time=time(23, 30),
                duration=90,
                status=BookingStatusEnum.CONFIRMED.value,
            )
        ]

        resolution = await availability_service.resolve(TEST_MENTOR_ID, date(2026, 3, 10), 60, now=NOW_UTC)

        assert [(s.time, s.booked) for s in resolution.slots] == [("00:00", True), ("01:00", False), ("02:00", False)]

    async def test_past_date_is_empty_without_reading_rules(self, availability_service: AvailabilityService, monday_store):
        resolution = await availability_service.resolve(TEST_MENTOR_ID, date(2026, 2, 23), 60, now=NOW_UTC)

        assert resolution.ok is True
        assert resolution.slots == []
        monday_store.list_availability_rules.assert_not_awaited()

    async def test_transient_error_is_retried(self, availability_service: AvailabilityService, monday_store, no_backoff):
        monday_store.list_availability_rules.side_effect = [transient_error(), [weekly(1, time(9, 0), time(11, 0))]]

        resolution = await availability_service.resolve(TEST_MENTOR_ID, NEXT_MONDAY, 60, now=NOW_UTC)

        assert resolution.ok is True
        assert [s.time for s in resolution.slots] == ["09:00", "10:00"]
        assert monday_store.list_availability_rules.await_count == 2
        monday_store.reset.assert_awaited_once()

    async def test_persistent_failure_is_reported(self, availability_service: AvailabilityService, monday_store, no_backoff):
        monday_store.list_availability_rules.side_effect = transient_error()

        resolution = await availability_service.resolve(TEST_MENTOR_ID, NEXT_MONDAY, 60, now=NOW_UTC)

        assert resolution.ok is False
        assert resolution.error == "We couldn't load available times. Please try again."
        assert monday_store.list_availability_rules.await_count == 3

    async def test_non_transient_error_is_not_retried(self, availability_service: AvailabilityService, monday_store, no_backoff):
        monday_store.list_blocked_dates.side_effect = ValueError("bad row")

        resolution = await availability_service.resolve(TEST_MENTOR_ID, NEXT_MONDAY, 60, now=NOW_UTC)

        assert resolution.ok is False
        assert monday_store.list_blocked_dates.await_count == 1

    async def test_get_slots_raises_on_failure(self, availability_service: AvailabilityService, monday_store):
        monday_store.list_blocked_dates.side_effect = ValueError("bad row")

        with pytest.raises(AvailabilityResolutionError):
            await availability_service.get_slots(TEST_MENTOR_ID, NEXT_MONDAY, 60, now=NOW_UTC)


@pytest.mark.anyio
class TestDateScan:

    async def test_find_dates_with_slots(self, availability_service: AvailabilityService, monday_store):
        monday_store.list_availability_rules.return_value = [
            weekly(1, time(9, 0), time(17, 0)),
            weekly(3, time(9, 0), time(12, 0)),
        ]
        monday_store.list_blocked_dates.return_value = [date(2026, 3, 9)]

        dates = await availability_service.find_dates_with_slots(TEST_MENTOR_ID, TODAY, 14, 60, now=NOW_UTC)

        assert dates == [date(2026, 3, 2), date(2026, 3, 4), date(2026, 3, 11)]

    async def test_first_available_date_skips_a_day_that_has_passed(self, availability_service: AvailabilityService, monday_store):
        monday_store.list_availability_rules.return_value = [weekly(1, time(9, 0), time(10, 0))]

        first = await availability_service.first_available_date(TEST_MENTOR_ID, 60, now=NOW_UTC)

        assert first == NEXT_MONDAY

    async def test_scan_failure_raises(self, availability_service: AvailabilityService, monday_store):
        monday_store.list_bookings_for_mentor_between.side_effect = ValueError("bad row")

        with pytest.raises(AvailabilityResolutionError):
            await availability_service.find_dates_with_slots(TEST_MENTOR_ID, TODAY, 7, 60, now=NOW_UTC)


@pytest.mark.anyio
class TestSlotsForAPI:

    async def test_unknown_mentor(self, availability_service: AvailabilityService, mock_store):
        mock_store.get_mentor.return_value = None

        with pytest.raises(HTTPException) as exc_info:
            await availability_service.get_slots_for_api(TEST_MENTOR_ID, NEXT_MONDAY, 60)
        assert exc_info.value.status_code == 404

    async def test_failed_read_is_503(self, availability_service: AvailabilityService, monday_store):
        monday_store.list_blocked_dates.side_effect = ValueError("bad row")

        with pytest.raises(HTTPException) as exc_info:
            await availability_service.get_slots_for_api(TEST_MENTOR_ID, NEXT_MONDAY, 60, now=NOW_UTC)
        assert exc_info.value.status_code == 503

    async def test_services_come_from_the_pricing_json(self, availability_service: AvailabilityService, monday_store):
        services = await availability_service.get_services_for_api(TEST_MENTOR_ID)
        assert [s.type.value for s in services] == ["oneOnOneSession", "chatAdvice", "digitalProducts"]


@pytest.mark.anyio
class TestRulesEditor:

    async def test_create_recurring_rules(self, availability_service: AvailabilityService, monday_store, mentor_user):
        monday_store.list_availability_rules.return_value = []
        monday_store.insert_availability_rules.side_effect = with_ids
        data = availability_models.AvailabilityRulesCreate(
            date=NEXT_MONDAY,
            is_recurring=True,
            slots=[{"start_time": "09:00", "end_time": "12:00"}, {"start_time": "14:00", "end_time": "16:00"}],
        )

        created = await availability_service.create_rules_for_api(data, mentor_user, now=NOW_UTC)

        assert len(created) == 2
        assert all(rule.day_of_week == 1 for rule in created)
        assert all(rule.is_recurring and rule.specific_date is None for rule in created)
        assert all(rule.expert_id == TEST_MENTOR_ID for rule in created)

    async def test_create_one_off_rule(self, availability_service: AvailabilityService, monday_store, mentor_user):
        monday_store.insert_availability_rules.side_effect = with_ids
        data = availability_models.AvailabilityRulesCreate(
            date=date(2026, 3, 7),
            slots=[{"start_time": "22:00", "end_time": "01:00"}],
        )

        created = await availability_service.create_rules_for_api(data, mentor_user, now=NOW_UTC)

        assert created[0].specific_date == date(2026, 3, 7)
        assert created[0].day_of_week == 6

    async def test_overlap_with_existing_is_409(self, availability_service: AvailabilityService, monday_store, mentor_user):
        data = availability_models.AvailabilityRulesCreate(
            date=NEXT_MONDAY,
            is_recurring=True,
            slots=[{"start_time": "16:00", "end_time": "18:00"}],
        )

        with pytest.raises(HTTPException) as exc_info:
            await availability_service.create_rules_for_api(data, mentor_user, now=NOW_UTC)

        assert exc_info.value.status_code == 409
        assert "overlaps with existing slot (09:00 - 17:00)" in exc_info.value.detail
        monday_store.insert_availability_rules.assert_not_awaited()

    async def test_past_date_is_400(self, availability_service: AvailabilityService, monday_store, mentor_user):
        data = availability_models.AvailabilityRulesCreate(
            date=date(2026, 3, 1),
            slots=[{"start_time": "09:00", "end_time": "10:00"}],
        )

        with pytest.raises(HTTPException) as exc_info:
            await availability_service.create_rules_for_api(data, mentor_user, now=NOW_UTC)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Cannot set availability for a past date."

    async def test_store_failure_is_500(self, availability_service: AvailabilityService, monday_store, mentor_user):
        monday_store.list_availability_rules.return_value = []
        monday_store.insert_availability_rules.side_effect = StoreError("Could not save the availability slots.")
        data = availability_models.AvailabilityRulesCreate(
            date=NEXT_MONDAY,
            slots=[{"start_time": "09:00", "end_time": "10:00"}],
        )

        with pytest.raises(HTTPException) as exc_info:
            await availability_service.create_rules_for_api(data, mentor_user, now=NOW_UTC)
        assert exc_info.value.status_code == 500

    async def test_non_mentor_is_403(self, availability_service: AvailabilityService, mock_store, student_user):
        mock_store.get_mentor.return_value = None
        data = availability_models.AvailabilityRulesCreate(
            date=NEXT_MONDAY,
            slots=[{"start_time": "09:00", "end_time": "10:00"}],
        )

        with pytest.raises(HTTPException) as exc_info:
            await availability_service.create_rules_for_api(data, student_user, now=NOW_UTC)
        assert exc_info.value.status_code == 403

    async def test_delete_someone_elses_rule(self, availability_service: AvailabilityService, monday_store, mentor_user):
        monday_store.get_availability_rule.return_value = weekly(1, time(9, 0), time(10, 0), expert_id=TEST_OTHER_MENTOR_ID)

        with pytest.raises(HTTPException) as exc_info:
            await availability_service.delete_rule_for_api(TEST_RULE_ID, mentor_user)
        assert exc_info.value.status_code == 403
        monday_store.delete_availability_rule.assert_not_awaited()

    async def test_delete_missing_rule(self, availability_service: AvailabilityService, monday_store, mentor_user):
        monday_store.get_availability_rule.return_value = None

        with pytest.raises(HTTPException) as exc_info:
            await availability_service.delete_rule_for_api(TEST_RULE_ID, mentor_user)
        assert exc_info.value.status_code == 404


@pytest.mark.anyio
class TestBlockedDates:

    async def test_block_range_skips_blocked_days(self, availability_service: AvailabilityService, monday_store, mentor_user):
        monday_store.list_blocked_dates.return_value = [date(2026, 3, 11)]
        monday_store.insert_blocked_dates.side_effect = with_ids
        data = availability_models.BlockedDateCreate(date=date(2026, 3, 10), end_date=date(2026, 3, 12), reason="Holiday")

        created = await availability_service.block_dates_for_api(data, mentor_user, now=NOW_UTC)

        assert [row.date for row in created] == [date(2026, 3, 10), date(2026, 3, 12)]
        assert all(row.reason == "Holiday" for row in created)

    async def test_block_already_blocked_day(self, availability_service: AvailabilityService, monday_store, mentor_user):
        monday_store.list_blocked_dates.return_value = [date(2026, 3, 10)]
        data = availability_models.BlockedDateCreate(date=date(2026, 3, 10))

        created = await availability_service.block_dates_for_api(data, mentor_user, now=NOW_UTC)

        assert created == []
        monday_store.insert_blocked_dates.assert_not_awaited()

    async def test_block_past_date(self, availability_service: AvailabilityService, monday_store, mentor_user):
        data = availability_models.BlockedDateCreate(date=date(2026, 3, 1))

        with pytest.raises(HTTPException) as exc_info:
            await availability_service.block_dates_for_api(data, mentor_user, now=NOW_UTC)
        assert exc_info.value.status_code == 400

    async def test_block_range_too_long(self, availability_service: AvailabilityService, monday_store, mentor_user):
        data = availability_models.BlockedDateCreate(date=date(2026, 3, 10), end_date=date(2027, 3, 20))

        with pytest.raises(HTTPException) as exc_info:
            await availability_service.block_dates_for_api(data, mentor_user, now=NOW_UTC)
        assert exc_info.value.status_code == 400

    async def test_unblock_date_that_is_not_blocked(self, availability_service: AvailabilityService, monday_store, mentor_user):
        monday_store.delete_blocked_date.return_value = False

        with pytest.raises(HTTPException) as exc_info:
            await availability_service.unblock_date_for_api(date(2026, 3, 10), mentor_user)
        assert exc_info.value.status_code == 404

    async def test_toggle_unblocks_a_blocked_day(self, availability_service: AvailabilityService, monday_store, mentor_user):
        monday_store.is_date_blocked.return_value = True
        monday_store.delete_blocked_date.return_value = True

        is_blocked = await availability_service.toggle_blocked_date_for_api(date(2026, 3, 10), mentor_user)

        assert is_blocked is False
        monday_store.delete_blocked_date.assert_awaited_once_with(TEST_MENTOR_ID, date(2026, 3, 10))

    async def test_calendar_month(self, availability_service: AvailabilityService, monday_store, mentor_user):
        monday_store.list_blocked_dates.return_value = [date(2026, 3, 16)]

        days = await availability_service.get_calendar_for_api(mentor_user, 2026, 3)

        assert len(days) == 31
        by_date = {day.date: day for day in days}
        assert len(by_date[date(2026, 3, 9)].rules) == 1
        assert by_date[date(2026, 3, 10)].rules == []
        assert by_date[date(2026, 3, 16)].is_blocked is True

    async def test_calendar_bad_month(self, availability_service: AvailabilityService, monday_store, mentor_user):
        with pytest.raises(HTTPException) as exc_info:
            await availability_service.get_calendar_for_api(mentor_user, 2026, 13)
        assert exc_info.value.status_code == 400
