'''
Retry helper for read operations against the database.
Writes are never retried, to avoid duplicate bookings.
'''
import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

from .config import settings
from .logger import log

T = TypeVar("T")


def is_transient_error(error: BaseException) -> bool:
    """True for failures worth retrying (lost connection, timeout, db unreachable)."""
    if isinstance(error, (OperationalError, InterfaceError, TimeoutError, ConnectionError)):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    return False


async def retry_read(
    operation: Callable[[], Awaitable[T]],
    label: str,
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    before_retry: Optional[Callable[[], Awaitable[None]]] = None,
) -> T:
    """
    Runs `operation`, retrying transient failures with exponential backoff
    (base_delay, 2*base_delay, ...). Non-transient errors and cancellation
    propagate immediately. `before_retry` runs between attempts, e.g. to
    roll back a session left unusable by the failure.
    """
    attempts = attempts or settings.READ_RETRY_ATTEMPTS
    base_delay = settings.READ_RETRY_BASE_DELAY_SECONDS if base_delay is None else base_delay

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if not is_transient_error(e) or attempt >= attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            log.warning(f"Transient error during '{label}' (attempt {attempt}/{attempts}): {e}. Retrying in {delay:.2f}s.")
            await asyncio.sleep(delay)
            if before_retry is not None:
                await before_retry()
            attempt += 1
