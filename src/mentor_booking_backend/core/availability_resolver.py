'''
Turns a mentor's availability rules, blocked dates and existing bookings
into the bookable slots of one date. Pure functions: no I/O, the caller
passes in everything (including "now" in the mentor's timezone).
'''
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

from ..database.db_enums import ACTIVE_BOOKING_STATUSES
from ..models.availability import SlotGroups, TimeSlot
from .time_intervals import MINUTES_PER_DAY, format_minutes, normalize_interval, to_minutes, weekday_sunday_first

NOON = 12 * 60
EVENING = 17 * 60


def rules_for_date(rules: Iterable[Any], target_date: date) -> list[Any]:
    """
    Rules that apply to `target_date`: weekly rules on its weekday plus
    one-off rules for that exact date. Both kinds contribute.
    """
    weekday = weekday_sunday_first(target_date)
    matching = []
    for rule in rules:
        if rule.is_recurring:
            if rule.day_of_week == weekday:
                matching.append(rule)
        elif rule.specific_date == target_date:
            matching.append(rule)
    return matching


def _booked_intervals(bookings: Iterable[Any], target_date: date) -> list[tuple[int, int]]:
    """
    Active bookings as minute intervals relative to midnight of
    `target_date`. Bookings on the day before and the day after are shifted
    by a day, so their intervals may fall outside 0..1440.
    """
    offsets = {
        target_date - timedelta(days=1): -MINUTES_PER_DAY,
        target_date: 0,
        target_date + timedelta(days=1): MINUTES_PER_DAY,
    }
    intervals = []
    for booking in bookings:
        if booking.duration <= 0 or booking.status not in ACTIVE_BOOKING_STATUSES:
            continue
        offset = offsets.get(booking.scheduled_date)
        if offset is None:
            continue
        start = to_minutes(booking.scheduled_time) + offset
        intervals.append((start, start + booking.duration))
    return intervals


def resolve_slots(
    rules: Iterable[Any],
    blocked_dates: Iterable[date],
    bookings: Iterable[Any],
    target_date: date,
    duration_minutes: int,
    now_local: datetime,
    step_minutes: Optional[int] = None,
) -> list[TimeSlot]:
    """
    Ordered slots for `target_date`.

    Past dates and blocked dates give an empty list. Each contributing
    window is cut into `duration_minutes` sessions (stepped by
    `step_minutes`, default the duration) that fit entirely inside the
    window and start before midnight. Sessions overlapping an active
    booking are returned as booked; on today, sessions that already started
    are returned as unavailable.
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    step = step_minutes or duration_minutes

    today = now_local.date()
    if target_date < today:
        return []
    if target_date in set(blocked_dates):
        return []

    starts: set[int] = set()
    for rule in rules_for_date(rules, target_date):
        window_start, window_end = normalize_interval(rule.start_time, rule.end_time)
        candidate = window_start
        while candidate + duration_minutes <= window_end and candidate < MINUTES_PER_DAY:
            starts.add(candidate)
            candidate += step

    booked = _booked_intervals(bookings, target_date)
    now_minutes = now_local.hour * 60 + now_local.minute if target_date == today else None

    slots = []
    for start in sorted(starts):
        end = start + duration_minutes
        is_booked = any(start < b_end and b_start < end for b_start, b_end in booked)
        already_started = now_minutes is not None and start <= now_minutes
        slots.append(TimeSlot(
            time=format_minutes(start),
            available=not is_booked and not already_started,
            booked=is_booked,
        ))
    return slots


def group_by_time_of_day(slots: Iterable[TimeSlot]) -> SlotGroups:
    """Morning before 12:00, afternoon until 17:00, evening after."""
    groups = SlotGroups()
    for slot in slots:
        minutes = to_minutes(slot.time)
        if minutes < NOON:
            groups.morning.append(slot)
        elif minutes < EVENING:
            groups.afternoon.append(slot)
        else:
            groups.evening.append(slot)
    return groups
