"""
Recurring schedule calendar arithmetic.

Pure functions only: no I/O and no clock reads, so every caller (the pollers,
the HTTP layer, the projection service) gets the same answer for the same
inputs. Every function returns a value for every input; unknown frequencies
and out-of-range day pins fall back deterministically instead of raising,
which keeps the pollers moving.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timedelta

from pfm.models import AutoImportFrequency, RecurringFrequency


logger = logging.getLogger(__name__)

FALLBACK_STEP = timedelta(days=1)


def _coerce_frequency(value, enum_cls):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        return None


def _clamp_day(year: int, month: int, day: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, max(1, min(day, last_day)))


def _normalize_day_of_month(day_of_month: int | None) -> int | None:
    if day_of_month is None:
        return None
    return max(1, min(int(day_of_month), 31))


def _normalize_day_of_week(day_of_week: int | None) -> int | None:
    if day_of_week is None:
        return None
    value = int(day_of_week)
    if value < 0 or value > 6:
        return None
    return value


def add_months(value: date, months: int, day: int | None = None) -> date:
    """Shift ``value`` by whole calendar months, clamping to the month end.

    ``day`` pins the day of month in the target month (defaults to the day of
    ``value``); 31 in a 30-day month becomes 30, 29 in a non-leap February 28.
    """
    total = value.year * 12 + (value.month - 1) + months
    year, month = divmod(total, 12)
    return _clamp_day(year, month + 1, day if day is not None else value.day)


def _next_weekday_on_or_after(value: date, weekday: int) -> date:
    return value + timedelta(days=(weekday - value.weekday()) % 7)


def next_occurrence(
    frequency: RecurringFrequency | str,
    anchor: date,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
    origin: date | None = None,
) -> date:
    """Return the next on-schedule date strictly after ``anchor``.

    ``origin`` is the schedule's start date. Biweekly schedules pinned to a
    weekday keep week parity with it, and yearly schedules restore the
    origin's day after a leap-day clamp (Feb 29 -> Feb 28 -> Feb 29).
    """
    freq = _coerce_frequency(frequency, RecurringFrequency)
    weekday = _normalize_day_of_week(day_of_week)
    pinned_day = _normalize_day_of_month(day_of_month)

    if freq in (RecurringFrequency.WEEKLY, RecurringFrequency.BIWEEKLY):
        step = 7 if freq == RecurringFrequency.WEEKLY else 14
        if weekday is None:
            return anchor + timedelta(days=step)
        candidate = _next_weekday_on_or_after(anchor + timedelta(days=1), weekday)
        if freq == RecurringFrequency.BIWEEKLY:
            cadence_start = _next_weekday_on_or_after(origin or anchor, weekday)
            weeks_elapsed = (candidate - cadence_start).days // 7
            if weeks_elapsed % 2 != 0:
                candidate += timedelta(days=7)
        return candidate

    if freq in (RecurringFrequency.MONTHLY, RecurringFrequency.QUARTERLY):
        months = 1 if freq == RecurringFrequency.MONTHLY else 3
        return add_months(anchor, months, pinned_day)

    if freq == RecurringFrequency.YEARLY:
        day = anchor.day
        if origin is not None and origin.month == anchor.month:
            day = origin.day
        return add_months(anchor, 12, day)

    logger.warning("Unknown recurring frequency %r; advancing one day", frequency)
    return anchor + FALLBACK_STEP


def first_occurrence(
    frequency: RecurringFrequency | str,
    start: date,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
    not_before: date | None = None,
) -> date:
    """First on-schedule date on or after ``max(start, not_before)``.

    Used when a schedule is created or its cadence changes. The result is
    never earlier than ``start``.
    """
    freq = _coerce_frequency(frequency, RecurringFrequency)
    weekday = _normalize_day_of_week(day_of_week)
    pinned_day = _normalize_day_of_month(day_of_month)
    floor = max(start, not_before) if not_before else start

    if freq in (RecurringFrequency.WEEKLY, RecurringFrequency.BIWEEKLY) and weekday is not None:
        candidate = _next_weekday_on_or_after(start, weekday)
    elif freq in (RecurringFrequency.MONTHLY, RecurringFrequency.QUARTERLY) and pinned_day is not None:
        candidate = _clamp_day(start.year, start.month, pinned_day)
        if candidate < start:
            candidate = add_months(start, 1, pinned_day)
    else:
        candidate = start

    # 과거 시작일은 floor 이후 첫 회차까지 건너뜀
    guard = 0
    while candidate < floor and guard < 10_000:
        candidate = next_occurrence(freq or frequency, candidate, weekday, pinned_day, origin=start)
        guard += 1
    return candidate


def next_auto_import_run(frequency: AutoImportFrequency | str, from_dt: datetime) -> datetime:
    """Next auto-import run measured from ``from_dt`` (the run completion time)."""
    freq = _coerce_frequency(frequency, AutoImportFrequency)
    if freq == AutoImportFrequency.DAILY:
        return from_dt + timedelta(days=1)
    if freq == AutoImportFrequency.WEEKLY:
        return from_dt + timedelta(days=7)
    if freq == AutoImportFrequency.MONTHLY:
        shifted = add_months(from_dt.date(), 1)
        return datetime.combine(shifted, from_dt.time())
    logger.warning("Unknown auto-import frequency %r; advancing one day", frequency)
    return from_dt + FALLBACK_STEP
