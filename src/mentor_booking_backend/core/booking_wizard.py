'''
The booking dialog as an explicit state machine.

    1 SELECTING_SERVICE -> 2 SELECTING_DATE_TIME -> 3 CONFIRMING

Services without a calendar slot go straight from 1 to 3. The wizard owns
no I/O of its own: slot lookups go through a SlotResolver and the final
write through a BookingGateway, both passed in by the caller.
'''
import asyncio
import enum
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable, Optional, Protocol
from uuid import UUID

from pydantic import BaseModel

from ..common.config import settings
from ..common.exceptions import AvailabilityResolutionError, BookingValidationError, InvalidWizardTransition, StoreError
from ..common.logger import log
from ..database.db_enums import SessionTypeEnum
from ..models.availability import SlotResolution, TimeSlot
from ..models.booking import BookingDraft
from ..models.services import Service
from .time_intervals import local_now

PLACEHOLDER_TIME = time(0, 0)


class WizardState(int, enum.Enum):
    SELECTING_SERVICE = 1
    SELECTING_DATE_TIME = 2
    CONFIRMING = 3


class WizardEvent(str, enum.Enum):
    SELECT_SERVICE = "select_service"
    SELECT_DATE_TIME = "select_date_time"
    CHANGE_DATE_TIME = "change_date_time"
    BACK = "back"


class DialogState(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class SuccessNotice(BaseModel):
    booking_id: UUID
    session_type: SessionTypeEnum
    message: str


class BookingGateway(Protocol):
    async def create_booking(self, draft: BookingDraft) -> Any: ...


class SlotResolver(Protocol):
    async def resolve(self, mentor_id: UUID, target_date: date, duration_minutes: int) -> SlotResolution: ...


def success_message(session_type: SessionTypeEnum) -> str:
    if session_type == SessionTypeEnum.DIGITAL_PRODUCTS:
        return "Purchase successful!"
    if session_type == SessionTypeEnum.CHAT_ADVICE:
        return "Message sent successfully!"
    return "Booking created successfully!"


class BookingWizard:
    """
    Drives one booking dialog for one mentor.
    Events not listed in TRANSITIONS raise InvalidWizardTransition.
    """

    # (from state, event, guard, to state); first matching row wins.
    TRANSITIONS: list[tuple[WizardState, WizardEvent, Callable[['BookingWizard'], bool], WizardState]] = [
        (WizardState.SELECTING_SERVICE, WizardEvent.SELECT_SERVICE,
            lambda w: not w.needs_scheduling, WizardState.CONFIRMING),
        (WizardState.SELECTING_SERVICE, WizardEvent.SELECT_SERVICE,
            lambda w: w.deep_linked and w.has_complete_date_time, WizardState.CONFIRMING),
        (WizardState.SELECTING_SERVICE, WizardEvent.SELECT_SERVICE,
            lambda w: True, WizardState.SELECTING_DATE_TIME),
        (WizardState.SELECTING_DATE_TIME, WizardEvent.SELECT_DATE_TIME,
            lambda w: w.has_complete_date_time, WizardState.CONFIRMING),
        (WizardState.SELECTING_DATE_TIME, WizardEvent.SELECT_DATE_TIME,
            lambda w: True, WizardState.SELECTING_DATE_TIME),
        (WizardState.CONFIRMING, WizardEvent.CHANGE_DATE_TIME,
            lambda w: w.needs_scheduling, WizardState.SELECTING_DATE_TIME),
        (WizardState.CONFIRMING, WizardEvent.BACK,
            lambda w: w.needs_scheduling, WizardState.SELECTING_DATE_TIME),
        (WizardState.CONFIRMING, WizardEvent.BACK,
            lambda w: not w.needs_scheduling, WizardState.SELECTING_SERVICE),
        (WizardState.SELECTING_DATE_TIME, WizardEvent.BACK,
            lambda w: True, WizardState.SELECTING_SERVICE),
    ]

    def __init__(
        self,
        mentor_id: UUID,
        gateway: BookingGateway,
        resolver: SlotResolver,
        mentor_timezone: str | None = None,
        user_id: Optional[UUID] = None,
        preselected_date: Optional[date] = None,
        preselected_time: Optional[time] = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.mentor_id = mentor_id
        self.gateway = gateway
        self.resolver = resolver
        self.mentor_timezone = mentor_timezone or settings.DEFAULT_MENTOR_TIMEZONE
        self.user_id = user_id
        self._clock = clock

        self.state = WizardState.SELECTING_SERVICE
        self.dialog = DialogState.CLOSED
        self.service: Optional[Service] = None
        self.selected_date: Optional[date] = preselected_date
        self.selected_time: Optional[time] = preselected_time
        self.selected_timezone: Optional[str] = self.mentor_timezone if preselected_date and preselected_time else None
        self.deep_linked = self.selected_timezone is not None

        self.slots: list[TimeSlot] = []
        self.slots_error: Optional[str] = None
        self._slots_task: Optional[asyncio.Task] = None

        self.last_error: Optional[str] = None
        self.success_notice: Optional[SuccessNotice] = None
        self.is_submitting = False

    # --- Guards ---

    @property
    def needs_scheduling(self) -> bool:
        return self.service is not None and self.service.needs_scheduling

    @property
    def has_complete_date_time(self) -> bool:
        return all(v is not None for v in (self.selected_date, self.selected_time, self.selected_timezone))

    @property
    def total_amount(self) -> Decimal:
        if self.service is None:
            return Decimal("0")
        return Decimal(self.service.price)

    def _fire(self, event: WizardEvent) -> WizardState:
        for from_state, row_event, guard, to_state in self.TRANSITIONS:
            if from_state == self.state and row_event == event and guard(self):
                log.info(f"Booking wizard for mentor {self.mentor_id}: {self.state.name} --{event.value}--> {to_state.name}")
                self.state = to_state
                if to_state == WizardState.SELECTING_SERVICE:
                    self._clear_date_time()
                return to_state
        raise InvalidWizardTransition(f"'{event.value}' is not allowed while {self.state.name}.")

    # --- Dialog lifecycle ---

    def open(self) -> None:
        self.dialog = DialogState.OPEN
        self.success_notice = None

    def close(self) -> None:
        """Closes the dialog and forgets everything entered so far."""
        self.dialog = DialogState.CLOSED
        self.state = WizardState.SELECTING_SERVICE
        self.service = None
        self._clear_date_time()
        self.last_error = None

    def _clear_date_time(self) -> None:
        self._cancel_slot_load()
        self.deep_linked = False
        self.selected_date = None
        self.selected_time = None
        self.selected_timezone = None
        self.slots = []
        self.slots_error = None

    # --- Events ---

    def select_service(self, service: Service) -> WizardState:
        if self.state != WizardState.SELECTING_SERVICE:
            raise InvalidWizardTransition(f"'select_service' is not allowed while {self.state.name}.")
        self.service = service
        return self._fire(WizardEvent.SELECT_SERVICE)

    def select_date_time(
        self,
        selected_date: Optional[date] = None,
        selected_time: Optional[time] = None,
        timezone: Optional[str] = None,
    ) -> WizardState:
        if self.state != WizardState.SELECTING_DATE_TIME:
            raise InvalidWizardTransition(f"'select_date_time' is not allowed while {self.state.name}.")
        self.selected_date = selected_date
        self.selected_time = selected_time
        self.selected_timezone = timezone
        return self._fire(WizardEvent.SELECT_DATE_TIME)

    def change_date_time(self) -> WizardState:
        return self._fire(WizardEvent.CHANGE_DATE_TIME)

    def back(self) -> WizardState:
        return self._fire(WizardEvent.BACK)

    # --- Slot loading ---

    def _cancel_slot_load(self) -> None:
        if self._slots_task is not None and not self._slots_task.done():
            self._slots_task.cancel()
        self._slots_task = None

    async def load_slots(self, target_date: date) -> Optional[SlotResolution]:
        """
        Loads slots for `target_date`. A newer call cancels this one; a
        superseded call returns None and leaves the wizard untouched.
        """
        if not self.needs_scheduling:
            raise InvalidWizardTransition("This service does not need a date and time.")

        self._cancel_slot_load()
        task = asyncio.create_task(
            self.resolver.resolve(self.mentor_id, target_date, self.service.duration_minutes)
        )
        self._slots_task = task
        try:
            resolution = await task
        except asyncio.CancelledError:
            if self._slots_task is not task:
                log.info(f"Slot load for {target_date} superseded by a newer request.")
                return None
            raise
        except AvailabilityResolutionError as e:
            resolution = SlotResolution(ok=False, error=str(e))

        if self._slots_task is not task:
            return None
        self._slots_task = None

        if resolution.ok:
            self.slots = resolution.slots
            self.slots_error = None
        else:
            self.slots = []
            self.slots_error = resolution.error or "We couldn't load available times. Please try again."
        return resolution

    # --- Submission ---

    def build_draft(
        self,
        name: str,
        email: str,
        purpose: str,
        phone: Optional[str] = None,
        add_recording: bool = False,
    ) -> BookingDraft:
        missing = [field for field, value in (("name", name), ("email", email), ("purpose", purpose))
                   if not value or not value.strip()]
        if missing:
            raise BookingValidationError(f"Please fill in: {', '.join(missing)}.", fields=missing)

        if self.needs_scheduling:
            scheduled_date, scheduled_time = self.selected_date, self.selected_time
        else:
            scheduled_date = local_now(self.mentor_timezone, self._clock() if self._clock else None).date()
            scheduled_time = PLACEHOLDER_TIME

        total = self.total_amount
        if add_recording:
            total += Decimal(settings.RECORDING_ADDON_PRICE)

        return BookingDraft(
            mentor_id=self.mentor_id,
            session_type=SessionTypeEnum(self.service.type),
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            duration=self.service.duration_minutes,
            message=purpose.strip(),
            total_amount=total,
            add_recording=add_recording,
            user_id=self.user_id,
            user_name=name.strip(),
            user_email=email.strip(),
            user_phone=phone.strip() if phone else None,
        )

    async def submit(
        self,
        name: str,
        email: str,
        purpose: str,
        phone: Optional[str] = None,
        add_recording: bool = False,
    ) -> Optional[SuccessNotice]:
        """
        Creates the booking. Missing contact fields raise
        BookingValidationError; a failed write returns None with `last_error`
        set. Either way the wizard stays in CONFIRMING with its data intact.
        """
        if self.state != WizardState.CONFIRMING:
            raise InvalidWizardTransition(f"'submit' is not allowed while {self.state.name}.")

        try:
            draft = self.build_draft(name, email, purpose, phone, add_recording)
        except BookingValidationError as e:
            self.last_error = e.message
            raise

        self.is_submitting = True
        self.last_error = None
        try:
            booking = await self.gateway.create_booking(draft)
        except (BookingValidationError, StoreError) as e:
            log.warning(f"Booking submission for mentor {self.mentor_id} failed: {e}")
            self.last_error = getattr(e, "message", None) or str(e)
            return None
        except Exception as e:
            log.error(f"Unexpected error submitting booking for mentor {self.mentor_id}: {e}", exc_info=True)
            self.last_error = "An unexpected error occurred. Please try again."
            return None
        finally:
            self.is_submitting = False

        notice = SuccessNotice(
            booking_id=booking.id,
            session_type=draft.session_type,
            message=success_message(draft.session_type),
        )
        self.close()
        self.success_notice = notice
        return notice
