'''
Booking notifications.
Services enqueue events; a background worker (started in the app lifespan)
turns each event into emails sent through the Resend HTTP API.
A failed email is logged and never reaches the request that caused it.
'''
import asyncio
import enum
from typing import Optional

import httpx
from fastapi import Request
from pydantic import BaseModel

from ..common.config import settings
from ..common.exceptions import EmailDispatchError
from ..common.logger import log
from ..core import email_templates
from ..core.email_templates import BookingEmailData, EmailMessage
from ..database import models as db_models


class EmailDispatcher:
    """
    Thin client for the Resend `POST /emails` endpoint.
    """
    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = settings.RESEND_API_KEY if api_key is None else api_key
        self.api_url = api_url or settings.RESEND_API_URL
        self.sender = sender or settings.EMAIL_FROM
        self.timeout = timeout or settings.EMAIL_TIMEOUT_SECONDS

    async def send(self, to: str, subject: str, html: str) -> str:
        """Sends one email and returns the provider's message id."""
        if not to or not subject or not html:
            raise EmailDispatchError("Missing required fields: to, subject, or html")
        if not self.api_key:
            raise EmailDispatchError("RESEND_API_KEY is not configured")

        log.info(f"Sending email '{subject}' to {to}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"from": self.sender, "to": to, "subject": subject, "html": html},
                )
        except httpx.RequestError as e:
            raise EmailDispatchError(f"Email provider unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code >= 400:
            raise EmailDispatchError(data.get("message") or f"Email provider returned {response.status_code}")

        message_id = data.get("id", "")
        log.info(f"Email sent successfully: {message_id}")
        return message_id

    async def send_message(self, message: EmailMessage) -> str:
        return await self.send(message.to, message.subject, message.html)


class NotificationKind(str, enum.Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"


class NotificationEvent(BaseModel):
    kind: NotificationKind
    data: BookingEmailData


def email_data_from_booking(booking: db_models.Bookings, mentor: Optional[db_models.ExpertProfiles]) -> BookingEmailData:
    return BookingEmailData(
        booking_id=str(booking.id),
        session_type=booking.session_type,
        student_name=booking.user_name or "Student",
        student_email=booking.user_email or "",
        mentor_name=(mentor.full_name if mentor else None) or "Your mentor",
        mentor_email=mentor.email if mentor else None,
        scheduled_date=booking.scheduled_date,
        scheduled_time=booking.scheduled_time,
        duration=booking.duration,
        message=booking.message,
        total_amount=f"{booking.total_amount}",
        meeting_link=booking.meeting_link,
    )


def messages_for_event(event: NotificationEvent) -> list[EmailMessage]:
    data = event.data
    if event.kind == NotificationKind.BOOKING_CREATED:
        candidates = [
            email_templates.booking_confirmation_for_student(data),
            email_templates.new_booking_for_mentor(data),
        ]
    elif event.kind == NotificationKind.BOOKING_CONFIRMED:
        candidates = [email_templates.session_confirmed_for_student(data)]
    else:
        candidates = [
            email_templates.session_cancelled(data, for_mentor=False),
            email_templates.session_cancelled(data, for_mentor=True),
        ]
    return [message for message in candidates if message is not None and message.to]


class NotificationService:
    """
    Owns the notification queue and its worker task.
    """
    def __init__(self, dispatcher: Optional[EmailDispatcher] = None):
        self.dispatcher = dispatcher or EmailDispatcher()
        self.queue: asyncio.Queue[NotificationEvent] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    # --- Lifecycle ---

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="notification-worker")
            log.info("Notification worker started.")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        log.info("Notification worker stopped.")

    async def drain(self) -> None:
        """Waits until every queued event has been handled."""
        await self.queue.join()

    # --- Producers ---

    def enqueue(self, event: NotificationEvent) -> None:
        self.queue.put_nowait(event)
        log.info(f"Queued '{event.kind.value}' notification for booking {event.data.booking_id}")

    def notify(self, kind: NotificationKind, booking: db_models.Bookings, mentor: Optional[db_models.ExpertProfiles]) -> None:
        self.enqueue(NotificationEvent(kind=kind, data=email_data_from_booking(booking, mentor)))

    # --- Consumer ---

    async def handle(self, event: NotificationEvent) -> int:
        """Sends every email for `event`; returns how many went out."""
        sent = 0
        for message in messages_for_event(event):
            try:
                await self.dispatcher.send_message(message)
                sent += 1
            except EmailDispatchError as e:
                log.error(f"Failed to send '{message.subject}' to {message.to} for booking {event.data.booking_id}: {e}")
        return sent

    async def _run(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self.handle(event)
            except Exception as e:
                log.error(f"Notification worker failed on '{event.kind.value}' for booking {event.data.booking_id}: {e}", exc_info=True)
            finally:
                self.queue.task_done()


def get_notification_service(request: Request) -> NotificationService:
    """FastAPI dependency: the instance created by the app lifespan."""
    return request.app.state.notification_service
