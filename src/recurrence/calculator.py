"""
Recurrence Calculator

Pure functions answering "when is this obligation next due?".

DESIGN DECISION: The calculator is total. It never raises for a descriptor
that loaded at all; anything it cannot classify (unknown pattern, missing
anchor) is computed as Monthly on day 1. Callers must always be able to show
a sane date for every stored obligation, even after corruption or format drift.

Calendar rules:
- Month-end clamping is recomputed for every month, never carried forward,
  so day 31 resolves to Feb 28/29, Apr 30, then back to May 31.
- "Next" means strictly after the reference date, except Biweekly where a
  reference date exactly on a cycle boundary is itself the occurrence.
- Roll-overs into the next month/year are small bounded loops.
"""

import calendar
from collections.abc import Iterator
from datetime import date, datetime, timedelta
from typing import Union

from src.audit.logger import get_logger
from src.models.recurrence import (
    WEEK_OF_MONTH,
    RecurrenceDescriptor,
    RecurrencePattern,
    WeeklyRule,
)


DEFAULT_OVERRIDE_GRACE_DAYS = 7
BIWEEKLY_CYCLE_DAYS = 14

# A roll-over lands in the next month/year on the first step; the bound
# only guards against a logic error turning into an endless loop.
_MAX_ROLLOVERS = 4

DateLike = Union[date, datetime]

logger = get_logger(__name__)


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _shift_month(year: int, month: int, months: int = 1) -> tuple[int, int]:
    index = (month - 1) + months
    return year + index // 12, index % 12 + 1


def _clamped_date(year: int, month: int, day: int) -> date:
    """Day clamped to the last calendar day of that month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def _nth_weekday_of_month(year: int, month: int, weekday: int, rule: WeeklyRule) -> date:
    if rule == WeeklyRule.LAST_OF_MONTH:
        month_end = _clamped_date(year, month, 31)
        return month_end - timedelta(days=(month_end.weekday() - weekday) % 7)

    first_of_month = date(year, month, 1)
    first = first_of_month + timedelta(days=(weekday - first_of_month.weekday()) % 7)
    return first + timedelta(weeks=WEEK_OF_MONTH.get(rule, 0))


def _next_monthly(day_of_month: int, from_date: date) -> date:
    target_day = max(1, min(day_of_month, 31))
    year, month = from_date.year, from_date.month
    candidate = _clamped_date(year, month, target_day)
    for _ in range(_MAX_ROLLOVERS):
        if candidate > from_date:
            break
        year, month = _shift_month(year, month)
        candidate = _clamped_date(year, month, target_day)
    return candidate


def _next_yearly(month_index: int, day_of_month: int, from_date: date) -> date:
    target_day = max(1, min(day_of_month, 31))
    month = max(0, min(month_index, 11)) + 1
    year = from_date.year
    candidate = _clamped_date(year, month, target_day)
    for _ in range(_MAX_ROLLOVERS):
        if candidate > from_date:
            break
        year += 1
        candidate = _clamped_date(year, month, target_day)
    return candidate


def _next_every_week(anchor: date, from_date: date) -> date:
    if anchor > from_date:
        return anchor
    weeks = (from_date - anchor).days // 7 + 1
    return anchor + timedelta(weeks=weeks)


def _next_weekday_of_month(anchor: date, rule: WeeklyRule, from_date: date) -> date:
    weekday = anchor.weekday()
    year, month = from_date.year, from_date.month
    candidate = _nth_weekday_of_month(year, month, weekday, rule)
    for _ in range(_MAX_ROLLOVERS):
        if candidate > from_date:
            break
        year, month = _shift_month(year, month)
        candidate = _nth_weekday_of_month(year, month, weekday, rule)
    return candidate


def _next_biweekly(anchor: date, from_date: date) -> date:
    """
    Boundary-inclusive: a reference date exactly N cycles after the anchor
    is returned as-is; any remainder rounds up to the next cycle.
    """
    if from_date <= anchor:
        return anchor
    elapsed = (from_date - anchor).days
    cycles = elapsed // BIWEEKLY_CYCLE_DAYS
    if elapsed % BIWEEKLY_CYCLE_DAYS:
        cycles += 1
    return anchor + timedelta(days=cycles * BIWEEKLY_CYCLE_DAYS)


def _degraded(descriptor: RecurrenceDescriptor, from_date: date, reason: str) -> date:
    logger.debug(
        "recurrence_degraded",
        pattern=str(getattr(descriptor.pattern, "value", descriptor.pattern)),
        reason=reason,
    )
    return _next_monthly(1, from_date)


def _calculate(descriptor: RecurrenceDescriptor, from_date: date) -> date:
    pattern = descriptor.pattern

    if pattern == RecurrencePattern.MONTHLY:
        return _next_monthly(descriptor.due_day_of_month or 1, from_date)

    if pattern == RecurrencePattern.YEARLY:
        return _next_yearly(
            descriptor.due_month or 0,
            descriptor.due_day_of_month or 1,
            from_date,
        )

    if pattern == RecurrencePattern.WEEKLY:
        anchor = descriptor.weekly_anchor_date
        if anchor is None:
            return _degraded(descriptor, from_date, "missing weekly anchor")
        rule = descriptor.weekly_rule or WeeklyRule.EVERY_WEEK
        if rule == WeeklyRule.EVERY_WEEK:
            return _next_every_week(anchor, from_date)
        return _next_weekday_of_month(anchor, rule, from_date)

    if pattern == RecurrencePattern.BIWEEKLY:
        anchor = descriptor.biweekly_anchor_date
        if anchor is None:
            return _degraded(descriptor, from_date, "missing biweekly anchor")
        return _next_biweekly(anchor, from_date)

    return _degraded(descriptor, from_date, "unrecognized pattern")


def next_occurrence(descriptor: RecurrenceDescriptor, from_instant: DateLike) -> date:
    """
    Next date the descriptor comes due after `from_instant`.

    Datetimes are reduced to their calendar date. The result is strictly
    after the reference date for every pattern except Biweekly exactly on a
    cycle boundary, where it equals the reference date.
    """
    from_date = _as_date(from_instant)
    try:
        return _calculate(descriptor, from_date)
    except (OverflowError, ValueError) as e:
        # Only reachable at the edge of the calendar (year 9999)
        logger.warning("recurrence_out_of_range", error=str(e), from_date=from_date.isoformat())
        return from_date


def effective_due_date(
    descriptor: RecurrenceDescriptor,
    from_instant: DateLike,
    grace_days: int = DEFAULT_OVERRIDE_GRACE_DAYS,
) -> date:
    """
    The date to show as "next due".

    A custom override wins while it is no more than `grace_days` before the
    reference date; exactly `grace_days` before still counts. Future
    overrides always win.
    """
    from_date = _as_date(from_instant)
    override = descriptor.custom_override_date
    if override is not None and override >= from_date - timedelta(days=grace_days):
        return override
    return next_occurrence(descriptor, from_date)


def iter_occurrences(descriptor: RecurrenceDescriptor, after: DateLike) -> Iterator[date]:
    """Endless, strictly increasing occurrences after `after`."""
    current = _as_date(after)
    while True:
        candidate = next_occurrence(descriptor, current)
        if candidate <= current:
            candidate = next_occurrence(descriptor, current + timedelta(days=1))
            if candidate <= current:
                return
        yield candidate
        current = candidate


def occurrences_between(
    descriptor: RecurrenceDescriptor,
    start: DateLike,
    end: DateLike,
    limit: int = 366,
) -> list[date]:
    """Occurrences in the half-open window (start, end], at most `limit`."""
    end_date = _as_date(end)
    results: list[date] = []
    for occurrence in iter_occurrences(descriptor, start):
        if occurrence > end_date or len(results) >= limit:
            break
        results.append(occurrence)
    return results
