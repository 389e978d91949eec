'''

'''
from typing import Optional

from pydantic import BaseModel, Field, HttpUrl

from ..database.db_enums import MeetingProviderEnum


class MeetingLink(BaseModel):
    """
    A video room attached to a confirmed one-on-one booking.
    """
    provider: MeetingProviderEnum
    meeting_id: str
    meeting_link: HttpUrl
    meeting_password: Optional[str] = Field(None, exclude=True)
