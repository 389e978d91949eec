'''
Generates video-call rooms for confirmed sessions.
'''
import re
import time
from uuid import UUID

from ..common.logger import log
from ..database.db_enums import MeetingProviderEnum
from ..models.meeting_links import MeetingLink

JITSI_BASE_URL = "https://meet.jit.si"

PROVIDER_NAMES = {
    MeetingProviderEnum.JITSI: "Jitsi Meet",
    MeetingProviderEnum.ZOOM: "Zoom",
    MeetingProviderEnum.GOOGLE_MEET: "Google Meet",
}


class MeetingService:
    """
    Jitsi rooms need no account or API call: the room exists as soon as
    someone opens its URL. Zoom and Google Meet are not wired up yet.
    """

    def meeting_id(self, mentor_name: str, booking_id: UUID | str) -> str:
        sanitized = re.sub(r"[^a-zA-Z0-9]", "", mentor_name or "").lower() or "mentor"
        timestamp = int(time.time() * 1000)
        return f"{sanitized}-{str(booking_id)[:8]}-{timestamp}"

    def create_meeting(
        self,
        mentor_name: str,
        booking_id: UUID | str,
        provider: MeetingProviderEnum = MeetingProviderEnum.JITSI,
    ) -> MeetingLink:
        if provider == MeetingProviderEnum.JITSI:
            room = self.meeting_id(mentor_name, booking_id)
            log.info(f"Created Jitsi room '{room}' for booking {booking_id}")
            return MeetingLink(provider=provider, meeting_id=room, meeting_link=f"{JITSI_BASE_URL}/{room}")
        raise NotImplementedError(f"{PROVIDER_NAMES[provider]} integration is not available yet.")
