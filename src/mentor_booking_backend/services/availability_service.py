'''
Mentor availability: slot lookups for students and the availability
editor for mentors.
'''
import calendar
from datetime import date, datetime, timedelta
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status

from ..common.config import settings
from ..common.exceptions import AvailabilityResolutionError, BookingValidationError, SlotConflictError, StoreError
from ..common.logger import log
from ..common.retry import retry_read
from ..core.availability_resolver import group_by_time_of_day, resolve_slots, rules_for_date
from ..core.slot_validator import validate_new_rules
from ..core.time_intervals import local_now, weekday_sunday_first
from ..database import models as db_models
from ..database.store import BookingStore
from ..models import availability as availability_models
from ..models.services import ServiceRead, parse_service_catalog
from .security import CurrentUser

RESOLUTION_ERROR_MESSAGE = "We couldn't load available times. Please try again."


class AvailabilityService:
    """
    Service for computing bookable slots and editing availability rules.
    """
    def __init__(self, store: Annotated[BookingStore, Depends(BookingStore)]):
        self.store = store

    # --- Internal Helpers ---

    async def _read(self, operation, label: str):
        return await retry_read(operation, label, before_retry=self.store.reset)

    async def _get_mentor_or_404(self, mentor_id: UUID) -> db_models.ExpertProfiles:
        mentor = await self._read(lambda: self.store.get_mentor(mentor_id), "get_mentor")
        if not mentor:
            log.warning(f"Tried to fetch non-existing mentor: {mentor_id}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mentor not found.")
        return mentor

    async def _require_mentor(self, current_user: CurrentUser) -> db_models.ExpertProfiles:
        mentor = await self._read(lambda: self.store.get_mentor(current_user.id), "get_mentor")
        if not mentor:
            log.warning(f"User {current_user.id} tried to manage availability without a mentor profile.")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only mentors can manage availability."
            )
        return mentor

    @staticmethod
    def _timezone_of(mentor: Optional[db_models.ExpertProfiles]) -> str:
        return (mentor.timezone if mentor else None) or settings.DEFAULT_MENTOR_TIMEZONE

    # --- Slot Resolution ---

    async def resolve(
        self,
        mentor_id: UUID,
        target_date: date,
        duration_minutes: int,
        now: Optional[datetime] = None,
    ) -> availability_models.SlotResolution:
        """
        Slots of `target_date` for a session of `duration_minutes`.
        A failed read (after retries) is reported as ok=False, never as an
        empty day.
        """
        try:
            mentor = await self._read(lambda: self.store.get_mentor(mentor_id), "get_mentor")
            now_local = local_now(self._timezone_of(mentor), now)
            if target_date < now_local.date():
                return availability_models.SlotResolution(ok=True, slots=[])

            rules = await self._read(lambda: self.store.list_availability_rules(mentor_id), "list_availability_rules")
            blocked = await self._read(lambda: self.store.list_blocked_dates(mentor_id), "list_blocked_dates")
            bookings = await self._read(
                lambda: self.store.list_bookings_for_mentor_between(
                    mentor_id, target_date - timedelta(days=1), target_date + timedelta(days=1)
                ),
                "list_bookings_for_mentor_between"
            )
        except Exception as e:
            log.error(f"Failed to load availability for mentor {mentor_id} on {target_date}: {e}", exc_info=True)
            return availability_models.SlotResolution(ok=False, error=RESOLUTION_ERROR_MESSAGE)

        slots = resolve_slots(
            rules, blocked, bookings, target_date, duration_minutes, now_local,
            step_minutes=settings.SLOT_STEP_MINUTES,
        )
        return availability_models.SlotResolution(ok=True, slots=slots)

    async def get_slots(self, mentor_id: UUID, target_date: date, duration_minutes: int, now: Optional[datetime] = None) -> list[availability_models.TimeSlot]:
        """Like `resolve`, but a failed read raises AvailabilityResolutionError."""
        resolution = await self.resolve(mentor_id, target_date, duration_minutes, now)
        if not resolution.ok:
            raise AvailabilityResolutionError(resolution.error or RESOLUTION_ERROR_MESSAGE)
        return resolution.slots

    async def find_dates_with_slots(
        self,
        mentor_id: UUID,
        start: date,
        days: int,
        duration_minutes: int,
        now: Optional[datetime] = None,
    ) -> list[date]:
        """Dates in [start, start + days) with at least one available slot."""
        end = start + timedelta(days=max(days, 1) - 1)
        try:
            mentor = await self._read(lambda: self.store.get_mentor(mentor_id), "get_mentor")
            rules = await self._read(lambda: self.store.list_availability_rules(mentor_id), "list_availability_rules")
            blocked = await self._read(lambda: self.store.list_blocked_dates(mentor_id), "list_blocked_dates")
            bookings = await self._read(
                lambda: self.store.list_bookings_for_mentor_between(
                    mentor_id, start - timedelta(days=1), end + timedelta(days=1)
                ),
                "list_bookings_for_mentor_between"
            )
        except Exception as e:
            log.error(f"Failed to scan availability for mentor {mentor_id} from {start}: {e}", exc_info=True)
            raise AvailabilityResolutionError(RESOLUTION_ERROR_MESSAGE) from e

        now_local = local_now(self._timezone_of(mentor), now)
        dates = []
        current = start
        while current <= end:
            slots = resolve_slots(
                rules, blocked, bookings, current, duration_minutes, now_local,
                step_minutes=settings.SLOT_STEP_MINUTES,
            )
            if any(slot.available for slot in slots):
                dates.append(current)
            current += timedelta(days=1)
        return dates

    async def first_available_date(
        self,
        mentor_id: UUID,
        duration_minutes: int,
        now: Optional[datetime] = None,
    ) -> Optional[date]:
        """The closest date, starting today, that has a free slot within the look-ahead window."""
        mentor = await self._read(lambda: self.store.get_mentor(mentor_id), "get_mentor")
        today = local_now(self._timezone_of(mentor), now).date()
        dates = await self.find_dates_with_slots(
            mentor_id, today, settings.AUTO_SELECT_LOOKAHEAD_DAYS, duration_minutes, now
        )
        return dates[0] if dates else None

    # --- Public Read Methods (API-Facing) ---

    async def get_services_for_api(self, mentor_id: UUID) -> list[ServiceRead]:
        mentor = await self._get_mentor_or_404(mentor_id)
        return [ServiceRead.from_service(service) for service in parse_service_catalog(mentor.service_pricing)]

    async def get_slots_for_api(
        self,
        mentor_id: UUID,
        target_date: date,
        duration_minutes: int,
        now: Optional[datetime] = None,
    ) -> availability_models.SlotsRead:
        log.info(f"Resolving {duration_minutes}-minute slots for mentor {mentor_id} on {target_date}")
        try:
            mentor = await self._get_mentor_or_404(mentor_id)
            slots = await self.get_slots(mentor_id, target_date, duration_minutes, now)
            return availability_models.SlotsRead(
                mentor_id=mentor_id,
                date=target_date,
                duration=duration_minutes,
                timezone=self._timezone_of(mentor),
                slots=slots,
                groups=group_by_time_of_day(slots),
            )
        except HTTPException:
            raise
        except AvailabilityResolutionError as e:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
        except Exception as e:
            log.error(f"Error in get_slots_for_api for mentor {mentor_id}: {e}", exc_info=True)
            raise

    async def get_available_dates_for_api(
        self,
        mentor_id: UUID,
        start: Optional[date],
        days: int,
        duration_minutes: int,
        now: Optional[datetime] = None,
    ) -> availability_models.AvailableDatesRead:
        try:
            mentor = await self._get_mentor_or_404(mentor_id)
            start = start or local_now(self._timezone_of(mentor), now).date()
            dates = await self.find_dates_with_slots(mentor_id, start, days, duration_minutes, now)
            return availability_models.AvailableDatesRead(
                mentor_id=mentor_id,
                duration=duration_minutes,
                dates=dates,
                first_available=dates[0] if dates else None,
            )
        except HTTPException:
            raise
        except AvailabilityResolutionError as e:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    # --- Availability Editor (Mentor-Facing) ---

    async def list_rules_for_api(self, current_user: CurrentUser) -> list[availability_models.AvailabilityRuleRead]:
        mentor = await self._require_mentor(current_user)
        rules = await self._read(lambda: self.store.list_availability_rules(mentor.id), "list_availability_rules")
        return [availability_models.AvailabilityRuleRead.model_validate(rule) for rule in rules]

    async def create_rules_for_api(
        self,
        data: availability_models.AvailabilityRulesCreate,
        current_user: CurrentUser,
        now: Optional[datetime] = None,
    ) -> list[availability_models.AvailabilityRuleRead]:
        """
        Validates the whole batch against itself and the mentor's existing
        rules, then inserts it in one go.
        """
        log.info(f"Mentor {current_user.id} adding {len(data.slots)} slot(s) for {data.date} (recurring={data.is_recurring})")
        try:
            mentor = await self._require_mentor(current_user)
            existing = await self._read(lambda: self.store.list_availability_rules(mentor.id), "list_availability_rules")
            now_local = local_now(self._timezone_of(mentor), now)

            validate_new_rules(data.slots, data.date, data.is_recurring, existing, now_local)

            weekday = weekday_sunday_first(data.date)
            rows = [
                db_models.AvailabilitySlots(
                    expert_id=mentor.id,
                    day_of_week=weekday,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    is_recurring=data.is_recurring,
                    specific_date=None if data.is_recurring else data.date,
                )
                for slot in data.slots
            ]
            created = await self.store.insert_availability_rules(rows)
            log.info(f"{len(created)} slot(s) added for mentor {mentor.id}")
            return [availability_models.AvailabilityRuleRead.model_validate(rule) for rule in created]

        except HTTPException:
            raise
        except SlotConflictError as e:
            log.warning(f"Rejected overlapping slots for mentor {current_user.id}: {e.message}")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
        except BookingValidationError as e:
            log.warning(f"Rejected slots for mentor {current_user.id}: {e.message}")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
        except StoreError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        except Exception as e:
            log.error(f"Error in create_rules_for_api for mentor {current_user.id}: {e}", exc_info=True)
            raise

    async def delete_rule_for_api(self, rule_id: UUID, current_user: CurrentUser) -> None:
        mentor = await self._require_mentor(current_user)
        rule = await self._read(lambda: self.store.get_availability_rule(rule_id), "get_availability_rule")
        if not rule:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Availability slot not found.")
        if rule.expert_id != mentor.id:
            log.warning(f"SECURITY: Mentor {mentor.id} tried to delete slot {rule_id} owned by {rule.expert_id}.")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to delete this slot."
            )
        try:
            await self.store.delete_availability_rule(rule_id)
        except StoreError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        log.info(f"Mentor {mentor.id} deleted availability slot {rule_id}")

    async def list_blocked_dates_for_api(self, current_user: CurrentUser) -> list[availability_models.BlockedDateRead]:
        mentor = await self._require_mentor(current_user)
        rows = await self._read(lambda: self.store.list_blocked_date_rows(mentor.id), "list_blocked_date_rows")
        return [availability_models.BlockedDateRead.model_validate(row) for row in rows]

    async def block_dates_for_api(
        self,
        data: availability_models.BlockedDateCreate,
        current_user: CurrentUser,
        now: Optional[datetime] = None,
    ) -> list[availability_models.BlockedDateRead]:
        """
        Blocks one date or an inclusive range. Days that are already blocked
        are skipped; only the new rows are returned.
        """
        mentor = await self._require_mentor(current_user)
        end_date = data.end_date or data.date
        span = (end_date - data.date).days + 1
        if span > settings.MAX_BLOCK_RANGE_DAYS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"You can block at most {settings.MAX_BLOCK_RANGE_DAYS} days at once."
            )
        today = local_now(self._timezone_of(mentor), now).date()
        if data.date < today:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot block a past date.")

        already_blocked = set(await self._read(lambda: self.store.list_blocked_dates(mentor.id), "list_blocked_dates"))
        rows = []
        for offset in range(span):
            day = data.date + timedelta(days=offset)
            if day in already_blocked:
                continue
            rows.append(db_models.BlockedDates(
                expert_id=mentor.id,
                date=day,
                reason=data.reason or "Blocked by mentor",
            ))
        if not rows:
            log.info(f"All {span} requested date(s) already blocked for mentor {mentor.id}")
            return []
        try:
            created = await self.store.insert_blocked_dates(rows)
        except StoreError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        log.info(f"Blocked {len(created)} date(s) for mentor {mentor.id}")
        return [availability_models.BlockedDateRead.model_validate(row) for row in created]

    async def unblock_date_for_api(self, target_date: date, current_user: CurrentUser) -> None:
        mentor = await self._require_mentor(current_user)
        try:
            deleted = await self.store.delete_blocked_date(mentor.id, target_date)
        except StoreError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        if not deleted:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="This date is not blocked.")
        log.info(f"Mentor {mentor.id} unblocked {target_date}")

    async def toggle_blocked_date_for_api(self, target_date: date, current_user: CurrentUser) -> bool:
        """Blocks the date if it is open, unblocks it if blocked. Returns the new blocked state."""
        mentor = await self._require_mentor(current_user)
        is_blocked = await self._read(lambda: self.store.is_date_blocked(mentor.id, target_date), "is_date_blocked")
        if is_blocked:
            await self.unblock_date_for_api(target_date, current_user)
            return False
        await self.block_dates_for_api(availability_models.BlockedDateCreate(date=target_date), current_user)
        return True

    async def get_calendar_for_api(self, current_user: CurrentUser, year: int, month: int) -> list[availability_models.CalendarDayRead]:
        """Per-day overview of one month: blocked flag and the rules that apply."""
        if not 1 <= month <= 12:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Month must be between 1 and 12.")
        mentor = await self._require_mentor(current_user)
        rules = await self._read(lambda: self.store.list_availability_rules(mentor.id), "list_availability_rules")
        blocked = set(await self._read(lambda: self.store.list_blocked_dates(mentor.id), "list_blocked_dates"))

        days_in_month = calendar.monthrange(year, month)[1]
        overview = []
        for day in range(1, days_in_month + 1):
            current = date(year, month, day)
            overview.append(availability_models.CalendarDayRead(
                date=current,
                is_blocked=current in blocked,
                rules=[availability_models.AvailabilityRuleRead.model_validate(r) for r in rules_for_date(rules, current)],
            ))
        return overview
