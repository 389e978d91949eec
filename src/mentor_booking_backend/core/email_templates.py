'''
Subjects and HTML bodies for the transactional emails.
'''
from datetime import date, time
from html import escape
from typing import Optional

from pydantic import BaseModel

from ..common.config import settings
from ..database.db_enums import SessionTypeEnum

SERVICE_NAMES = {
    SessionTypeEnum.ONE_ON_ONE.value: "1-on-1 Session",
    SessionTypeEnum.CHAT_ADVICE.value: "Chat Advice",
    SessionTypeEnum.DIGITAL_PRODUCTS.value: "Digital Product",
    SessionTypeEnum.NOTES.value: "Notes & Resources",
}


class EmailMessage(BaseModel):
    to: str
    subject: str
    html: str


class BookingEmailData(BaseModel):
    """Everything the booking emails show, flattened from the booking and its mentor."""
    booking_id: str
    session_type: str
    student_name: str
    student_email: str
    mentor_name: str
    mentor_email: Optional[str] = None
    scheduled_date: date
    scheduled_time: time
    duration: int
    message: Optional[str] = None
    total_amount: str
    meeting_link: Optional[str] = None

    @property
    def service_name(self) -> str:
        return SERVICE_NAMES.get(self.session_type, self.session_type)

    @property
    def when(self) -> str:
        if self.duration <= 0:
            return self.scheduled_date.strftime("%A, %d %B %Y")
        return f"{self.scheduled_date.strftime('%A, %d %B %Y')} at {self.scheduled_time.strftime('%H:%M')}"


def _layout(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; color: #111827; background: #f9fafb; padding: 24px;">
    <div style="max-width: 600px; margin: 0 auto; background: #ffffff; border-radius: 12px; padding: 32px;">
      <h1 style="font-size: 22px;">{title}</h1>
      {body}
      <p style="color: #6b7280; font-size: 12px; margin-top: 32px;">Sent by {escape(settings.APP_NAME)}</p>
    </div>
  </body>
</html>"""


def _details(data: BookingEmailData, counterpart_label: str, counterpart: str) -> str:
    rows = [
        ("Service", data.service_name),
        (counterpart_label, counterpart),
        ("When", data.when),
    ]
    if data.duration > 0:
        rows.append(("Duration", f"{data.duration} minutes"))
    rows.append(("Amount", data.total_amount))
    if data.message:
        rows.append(("Purpose", data.message))
    if data.meeting_link:
        rows.append(("Meeting link", f'<a href="{escape(data.meeting_link)}">{escape(data.meeting_link)}</a>'))

    cells = "".join(
        f"<tr><td style=\"padding: 4px 12px 4px 0; color: #6b7280;\">{label}</td>"
        f"<td style=\"padding: 4px 0;\">{value if label == 'Meeting link' else escape(str(value))}</td></tr>"
        for label, value in rows
    )
    return f"<h2 style=\"font-size: 16px;\">Session Details</h2><table>{cells}</table>"


def booking_confirmation_for_student(data: BookingEmailData) -> EmailMessage:
    body = (
        f"<p>Hi {escape(data.student_name)},</p>"
        f"<p>Your booking with {escape(data.mentor_name)} has been received. "
        f"You'll get another email as soon as the mentor confirms it.</p>"
        + _details(data, "Mentor", data.mentor_name)
        + f"<p><a href=\"{settings.FRONTEND_URL}/dashboard/sessions\">View your sessions</a></p>"
    )
    return EmailMessage(
        to=data.student_email,
        subject=f"Booking Confirmed: {data.service_name} with {data.mentor_name}",
        html=_layout("Booking Confirmed!", body),
    )


def new_booking_for_mentor(data: BookingEmailData) -> Optional[EmailMessage]:
    if not data.mentor_email:
        return None
    body = (
        f"<p>Hi {escape(data.mentor_name)},</p>"
        f"<p>{escape(data.student_name)} ({escape(data.student_email)}) just booked you.</p>"
        + _details(data, "Student", data.student_name)
        + f"<p><a href=\"{settings.FRONTEND_URL}/dashboard/sessions\">Review the booking</a></p>"
    )
    return EmailMessage(
        to=data.mentor_email,
        subject=f"New Booking: {data.service_name} with {data.student_name}",
        html=_layout("New Booking Received", body),
    )


def session_reminder(data: BookingEmailData, time_until: str, for_mentor: bool) -> Optional[EmailMessage]:
    """`time_until` is the human label, '24 hours' or '1 hour'."""
    to = data.mentor_email if for_mentor else data.student_email
    if not to:
        return None
    name, other_label, other = (
        (data.mentor_name, "Student", data.student_name) if for_mentor
        else (data.student_name, "Mentor", data.mentor_name)
    )
    body = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>Your session starts in {time_until}.</p>"
        + _details(data, other_label, other)
    )
    return EmailMessage(
        to=to,
        subject=f"Reminder: Session in {time_until} with {other}",
        html=_layout(f"Your session starts in {time_until}", body),
    )


def session_cancelled(data: BookingEmailData, for_mentor: bool) -> Optional[EmailMessage]:
    to = data.mentor_email if for_mentor else data.student_email
    if not to:
        return None
    name, other_label, other = (
        (data.mentor_name, "Student", data.student_name) if for_mentor
        else (data.student_name, "Mentor", data.mentor_name)
    )
    body = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>This session has been cancelled.</p>"
        + _details(data, other_label, other)
    )
    return EmailMessage(
        to=to,
        subject=f"Session Cancelled: {data.service_name}",
        html=_layout("Session Cancelled", body),
    )


def session_confirmed_for_student(data: BookingEmailData) -> EmailMessage:
    body = (
        f"<p>Hi {escape(data.student_name)},</p>"
        f"<p>{escape(data.mentor_name)} accepted your booking.</p>"
        + _details(data, "Mentor", data.mentor_name)
    )
    return EmailMessage(
        to=data.student_email,
        subject=f"Session Confirmed: {data.service_name} with {data.mentor_name}",
        html=_layout("Your session is confirmed", body),
    )
