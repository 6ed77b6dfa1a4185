from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any

from ..domain.models import AggregationConfig, TimeWindow, coerce_days_to_show
from .timing import end_of_day, start_of_day

LOGGER = logging.getLogger(__name__)

_SHORT_RELATIVE_PATTERN = re.compile(r"^([+-])(\d+)$")
_LONG_RELATIVE_PATTERN = re.compile(r"^today([+-])(\d+)$", re.IGNORECASE)


def _parse_relative_date(value: str, today: date) -> date | None:
    match = _SHORT_RELATIVE_PATTERN.match(value) or _LONG_RELATIVE_PATTERN.match(value)
    if match is None:
        return None
    sign = 1 if match.group(1) == "+" else -1
    return today + timedelta(days=sign * int(match.group(2)))


def _parse_plain_date(value: str) -> date | None:
    parts = value.split("-")
    if len(parts) != 3:
        return None
    try:
        year, month, day = (int(part) for part in parts)
    except ValueError:
        return None
    if year <= 0 or not 1 <= month <= 12 or not 1 <= day <= 31:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_start_date(value: str | None, today: date) -> date:
    """Resolve a configured start date, falling back to ``today``.

    Accepted forms, tried in order: ``+N``/``-N``, ``today+N``/``today-N``,
    an ISO date-time (only its date part is used) and ``YYYY-MM-DD``.
    """
    if value is None or not value.strip():
        return today
    text = value.strip()

    try:
        relative = _parse_relative_date(text, today)
    except OverflowError:
        LOGGER.warning("Relative start date out of range: %s, falling back to today", text)
        return today
    if relative is not None:
        return relative

    if "T" in text:
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            LOGGER.warning("Invalid ISO start date: %s, falling back to today", text)
            return today

    parsed = _parse_plain_date(text)
    if parsed is None:
        LOGGER.warning("Malformed start date: %s, falling back to today", text)
        return today
    return parsed


def resolve_time_window(days_to_show: Any, start_date: str | None, now: datetime) -> TimeWindow:
    """Return the fetch window ``[start, end]`` in the time zone of ``now``.

    ``start`` is local midnight of the resolved date; ``end`` is the last
    millisecond of the final displayed day.
    """
    tz = now.tzinfo
    first_day = parse_start_date(start_date, now.date())
    days = coerce_days_to_show(days_to_show)
    # The day after the range must exist too; callers add days_to_show to the start.
    try:
        first_day + timedelta(days=days)
    except OverflowError:
        LOGGER.warning("Window of %s days from %s is out of range, falling back to today", days, first_day)
        first_day = now.date()
    last_day = first_day + timedelta(days=days - 1)
    return TimeWindow(start=start_of_day(first_day, tz), end=end_of_day(last_day, tz))


def resolve_reference_date(config: AggregationConfig, now: datetime) -> datetime:
    """Local midnight of "day 0": the configured start date, else today."""
    if config.start_date:
        return resolve_time_window(config.days_to_show, config.start_date, now).start
    return start_of_day(now.date(), now.tzinfo)


def navigate(
    config: AggregationConfig,
    now: datetime,
    *,
    start_date: str | None = None,
    offset: int = 0,
) -> AggregationConfig:
    """Return a copy of ``config`` showing another range of days.

    ``start_date`` replaces the configured start date; ``"today"`` clears it
    and goes back to the current day. ``offset`` then moves the range by
    whole days from wherever it starts.
    """
    if start_date is not None:
        text = start_date.strip()
        override = None if text.lower() in ("", "today") else text
        config = config.model_copy(update={"start_date": override})

    if not offset:
        return config

    current = resolve_reference_date(config, now).date()
    try:
        shifted = current + timedelta(days=offset)
        shifted + timedelta(days=config.days_to_show)
    except OverflowError:
        LOGGER.warning("Cannot move %s days from %s, keeping the current range", offset, current)
        return config
    return config.model_copy(update={"start_date": shifted.isoformat()})
