'''
Verification of the access tokens issued by the hosted auth provider.
A mentor's user id is also their expert_profiles id.
'''
from datetime import datetime, timedelta, timezone
from typing import Optional, Annotated
from uuid import UUID

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel

from ..common.config import settings
from ..models.token import TokenPayload
from ..common.logger import log


class CurrentUser(BaseModel):
    id: UUID
    email: Optional[str] = None


# --- JWT Handling ---
class JWTHandler:
    @staticmethod
    def create_access_token(
        subject: str | UUID,
        expires_delta: Optional[timedelta] = None,
        email: Optional[str] = None,
    ) -> str:
        """Mints a token the same way the auth provider does. Used by scripts and tests."""
        if expires_delta is None:
            expires_delta = timedelta(minutes=60)

        expire = datetime.now(timezone.utc) + expires_delta
        to_encode = {"sub": str(subject), "exp": expire}
        if email:
            to_encode["email"] = email
        if settings.JWT_AUDIENCE:
            to_encode["aud"] = settings.JWT_AUDIENCE
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> TokenPayload | None:
        try:
            options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
            payload = jwt.decode(
                token,
                settings.SECRET_KEY,
                algorithms=[settings.ALGORITHM],
                audience=settings.JWT_AUDIENCE,
                options=options,
            )
            return TokenPayload(**payload)
        except (JWTError, ValueError) as e: # Catch Pydantic validation errors too
            log.warning(f"JWT decode/validation error: {e}")
            return None


# --- JWT Verification Dependency Functions ---
# Tokens are obtained from the auth provider; this API has no login route.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=settings.AUTH_TOKEN_URL)
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl=settings.AUTH_TOKEN_URL, auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(token: Annotated[str, Depends(oauth2_scheme)]) -> CurrentUser:
    """Dependency for routes that require a signed-in user."""
    token_data = JWTHandler.decode_token(token)
    if not token_data:
        log.warning("JWT decode failed or invalid token structure.")
        raise _credentials_exception()
    log.info(f"JWT verified successfully for user: {token_data.sub}")
    return CurrentUser(id=token_data.sub, email=token_data.email)


async def get_optional_user(token: Annotated[Optional[str], Depends(optional_oauth2_scheme)]) -> Optional[CurrentUser]:
    """
    Dependency for routes open to guests. No token means a guest; a token
    that fails verification is still rejected.
    """
    if not token:
        return None
    return await get_current_user(token)
