'''
Claims carried by the access tokens the hosted auth provider issues.
'''
from pydantic import BaseModel
from datetime import datetime
from typing import Optional
from uuid import UUID

class TokenPayload(BaseModel):
    sub: UUID # the hosted auth provider puts the user's id in 'sub'
    exp: datetime
    email: Optional[str] = None
    role: Optional[str] = None
