'''
Session reminders, run periodically by scripts/send_reminders.py.
'''
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel

from ..common.config import settings
from ..common.exceptions import EmailDispatchError
from ..common.logger import log
from ..core import email_templates
from ..core.time_intervals import resolve_timezone
from ..database import models as db_models
from ..database.store import BookingStore
from .notification_service import EmailDispatcher, email_data_from_booking

# (flag, label, window) : sent when window[0] < time until start <= window[1]
REMINDER_WINDOWS = (
    ("24h", "24 hours", (timedelta(hours=1), timedelta(hours=24))),
    ("1h", "1 hour", (timedelta(minutes=30), timedelta(hours=1))),
)


class ReminderRun(BaseModel):
    checked: int = 0
    sent_24h: int = 0
    sent_1h: int = 0


def session_start(booking: db_models.Bookings, mentor: Optional[db_models.ExpertProfiles]) -> datetime:
    """Aware start time of the booking, in the mentor's timezone."""
    tz = resolve_timezone((mentor.timezone if mentor else None) or settings.DEFAULT_MENTOR_TIMEZONE)
    return datetime.combine(booking.scheduled_date, booking.scheduled_time, tzinfo=tz)


def due_reminder(booking: db_models.Bookings, starts_at: datetime, now: datetime) -> Optional[tuple[str, str]]:
    """(flag, label) of the reminder due for `booking` at `now`, if any."""
    until = starts_at - now
    if until <= timedelta(0):
        return None
    for flag, label, (low, high) in REMINDER_WINDOWS:
        already_sent = getattr(booking, f"reminder_{flag}_sent")
        if not already_sent and low < until <= high:
            return flag, label
    return None


class ReminderService:
    def __init__(self, store: BookingStore, dispatcher: Optional[EmailDispatcher] = None):
        self.store = store
        self.dispatcher = dispatcher or EmailDispatcher()

    async def _send(self, booking: db_models.Bookings, label: str) -> None:
        data = email_data_from_booking(booking, booking.expert)
        for for_mentor in (False, True):
            message = email_templates.session_reminder(data, label, for_mentor=for_mentor)
            if message is None:
                continue
            try:
                await self.dispatcher.send_message(message)
            except EmailDispatchError as e:
                log.error(f"Failed to send {label} reminder for booking {booking.id} to {message.to}: {e}")

    async def send_due_reminders(self, now: Optional[datetime] = None) -> ReminderRun:
        """
        Sends every reminder that is due and flags it on the booking, so each
        one goes out once even if an email fails.
        """
        now = now or datetime.now(timezone.utc)
        today = now.date()
        bookings = await self.store.list_bookings_needing_reminders(today - timedelta(days=1), today + timedelta(days=2))
        run = ReminderRun(checked=len(bookings))
        log.info(f"Checking {len(bookings)} confirmed booking(s) for reminders at {now.isoformat()}")

        for booking in bookings:
            due = due_reminder(booking, session_start(booking, booking.expert), now)
            if due is None:
                continue
            flag, label = due
            log.info(f"Sending {flag} reminder for booking {booking.id}")
            await self._send(booking, label)
            await self.store.mark_reminder_sent(booking, flag)
            if flag == "24h":
                run.sent_24h += 1
            else:
                run.sent_1h += 1

        await self.store.commit()
        log.info(f"Reminder run finished: {run.sent_24h} x 24h, {run.sent_1h} x 1h")
        return run
