'''
Checks a batch of proposed availability windows before they are saved.
Every check raises on the first problem, with a message that tells the
mentor which window to fix.
'''
from datetime import date, datetime
from typing import Any, Iterable

from ..common.config import settings
from ..common.exceptions import BookingValidationError, SlotConflictError
from ..models.availability import AvailabilityRuleInput
from .time_intervals import format_minutes, interval_duration, intervals_overlap, normalize_interval, to_minutes, weekday_sunday_first


def relevant_existing_rules(existing_rules: Iterable[Any], target_date: date, is_recurring: bool) -> list[Any]:
    """
    Weekly batches are compared with weekly rules on the same weekday.
    One-off batches are compared with one-off rules on that date and with
    weekly rules on its weekday.
    """
    weekday = weekday_sunday_first(target_date)
    relevant = []
    for rule in existing_rules:
        same_weekday = rule.is_recurring and rule.day_of_week == weekday
        if is_recurring:
            if same_weekday:
                relevant.append(rule)
        elif same_weekday or (not rule.is_recurring and rule.specific_date == target_date):
            relevant.append(rule)
    return relevant


def _label(rule: Any) -> str:
    return f"{format_minutes(to_minutes(rule.start_time))} - {format_minutes(to_minutes(rule.end_time))}"


def validate_new_rules(
    new_rules: list[AvailabilityRuleInput],
    target_date: date,
    is_recurring: bool,
    existing_rules: Iterable[Any],
    now_local: datetime,
    min_minutes: int | None = None,
) -> None:
    """
    Raises BookingValidationError (or SlotConflictError for overlaps) if the
    batch cannot be saved for `target_date`. `now_local` is the current time
    in the mentor's timezone.
    """
    min_minutes = min_minutes or settings.MIN_SLOT_MINUTES
    today = now_local.date()

    if not new_rules:
        raise BookingValidationError("Add at least one time slot.", fields=["slots"])

    if target_date < today:
        raise BookingValidationError("Cannot set availability for a past date.", fields=["date"])

    now_minutes = now_local.hour * 60 + now_local.minute
    for i, rule in enumerate(new_rules, start=1):
        start = to_minutes(rule.start_time)
        end = to_minutes(rule.end_time)
        if start == end:
            raise BookingValidationError(
                f"Start and end time are the same for slot {i}. Please pick a different end time.",
                fields=[f"slots.{i - 1}"]
            )

        if target_date == today:
            wraps = end < start
            if not wraps and end <= now_minutes:
                raise BookingValidationError(
                    f"Slot {i} ends in the past. Please select a future time.",
                    fields=[f"slots.{i - 1}"]
                )
            if start < now_minutes:
                raise BookingValidationError(
                    f"Slot {i} starts in the past. Please select a future time.",
                    fields=[f"slots.{i - 1}"]
                )

        if interval_duration(rule.start_time, rule.end_time) < min_minutes:
            raise BookingValidationError(
                f"Slot {i} is less than {min_minutes} minutes. Please increase the duration.",
                fields=[f"slots.{i - 1}"]
            )

    normalized = [normalize_interval(rule.start_time, rule.end_time) for rule in new_rules]
    for i in range(len(normalized)):
        for j in range(i + 1, len(normalized)):
            if intervals_overlap(normalized[i], normalized[j]):
                raise SlotConflictError(
                    f"Slot {i + 1} and slot {j + 1} overlap with each other",
                    fields=[f"slots.{i}", f"slots.{j}"]
                )

    relevant = relevant_existing_rules(existing_rules, target_date, is_recurring)
    for i, (rule, interval) in enumerate(zip(new_rules, normalized), start=1):
        for existing in relevant:
            if intervals_overlap(interval, normalize_interval(existing.start_time, existing.end_time)):
                raise SlotConflictError(
                    f"Slot {i} ({_label(rule)}) overlaps with existing slot ({_label(existing)})",
                    fields=[f"slots.{i - 1}"]
                )
