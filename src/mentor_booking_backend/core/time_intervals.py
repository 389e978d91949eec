'''
Time-of-day arithmetic shared by the resolver and the slot validator.
Times are handled as minutes since midnight; an interval whose end is not
after its start wraps past midnight.
'''
from datetime import date, datetime, time, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..common.logger import log

MINUTES_PER_DAY = 24 * 60

TimeLike = Union[str, time]


def to_minutes(value: TimeLike) -> int:
    """'09:30' / '09:30:00' / time(9, 30) -> 570."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time of day: '{value}'")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time of day: '{value}'")
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    """570 -> '09:30'. Values past midnight are folded back into the day."""
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_to_time(minutes: int) -> time:
    minutes %= MINUTES_PER_DAY
    return time(minutes // 60, minutes % 60)


def normalize_interval(start: TimeLike, end: TimeLike) -> tuple[int, int]:
    """Returns (start, end) in minutes with end > start, adding a day to end when it wraps."""
    start_min = to_minutes(start)
    end_min = to_minutes(end)
    if end_min <= start_min:
        end_min += MINUTES_PER_DAY
    return start_min, end_min


def interval_duration(start: TimeLike, end: TimeLike) -> int:
    """Length in minutes modulo 24h. A zero-length interval returns 0."""
    return (to_minutes(end) - to_minutes(start)) % MINUTES_PER_DAY


def intervals_overlap(a: tuple[int, int], b: tuple[int, int]) -> bool:
    """
    Half-open overlap of two normalized intervals. `b` is also compared one
    day earlier and later so windows that cross midnight are caught.
    Touching intervals (end == start) do not overlap.
    """
    a_start, a_end = a
    for shift in (0, MINUTES_PER_DAY, -MINUTES_PER_DAY):
        b_start, b_end = b[0] + shift, b[1] + shift
        if a_start < b_end and b_start < a_end:
            return True
    return False


def weekday_sunday_first(value: date) -> int:
    """0=Sunday ... 6=Saturday."""
    return (value.weekday() + 1) % 7


def resolve_timezone(tz_name: Optional[str]) -> ZoneInfo:
    """ZoneInfo for `tz_name`, falling back to UTC for a missing or unknown zone."""
    if not tz_name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning(f"Invalid timezone '{tz_name}'. Falling back to UTC.")
        return ZoneInfo("UTC")


def local_now(tz_name: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Current wall-clock time in `tz_name`. `now` (aware) can be injected by callers and tests."""
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(resolve_timezone(tz_name))
