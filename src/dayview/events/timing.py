from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from ..domain.models import AllDay, RawEvent, Timed

END_OF_DAY = time(23, 59, 59, 999000)
ONE_DAY = timedelta(days=1)
ONE_MILLISECOND = timedelta(milliseconds=1)
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, END_OF_DAY, tzinfo=tz)


def local_date(instant: datetime, tz: tzinfo) -> date:
    return instant.astimezone(tz).date()


def epoch_millis(instant: datetime) -> int:
    return (instant - EPOCH) // ONE_MILLISECOND


def iter_dates(first: date, last: date):
    """Yield every date from ``first`` to ``last`` inclusive."""
    current = first
    while current <= last:
        yield current
        current += ONE_DAY


def event_bounds(event: RawEvent, tz: tzinfo) -> tuple[datetime, datetime]:
    """Return the local start and end used for day grouping.

    All-day end dates are exclusive, so the returned end is the local midnight
    of the last covered day rather than the raw end date.
    """
    start, end = event.start, event.end
    if isinstance(start, Timed) and isinstance(end, Timed):
        return start.instant.astimezone(tz), end.instant.astimezone(tz)
    if isinstance(start, AllDay) and isinstance(end, AllDay):
        return start_of_day(start.date, tz), start_of_day(end.date - ONE_DAY, tz)
    raise ValueError("event start and end must both be all-day or both be timed")


def is_event_running(event: RawEvent, now: datetime) -> bool:
    if getattr(event, "is_empty_placeholder", False):
        return False
    if not isinstance(event.start, Timed) or not isinstance(event.end, Timed):
        return False
    return event.start.instant <= now < event.end.instant


def event_progress(event: RawEvent, now: datetime) -> int | None:
    """Percentage (0-100) of a running timed event that has elapsed."""
    start, end = event.start, event.end
    if not is_event_running(event, now) or not isinstance(start, Timed) or not isinstance(end, Timed):
        return None

    total = (end.instant - start.instant).total_seconds()
    elapsed = (now - start.instant).total_seconds()
    return min(100, max(0, math.floor(elapsed / total * 100)))
