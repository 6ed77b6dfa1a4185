from __future__ import annotations

import logging
import sys
from datetime import date, datetime, tzinfo
from typing import Sequence

from ..domain.models import AggregationConfig, DaySlot, ProcessedEvent
from ..domain.translations import Translations
from .timing import end_of_day, event_bounds, start_of_day
from .weeks import week_number_with_majority_rule

LOGGER = logging.getLogger(__name__)


def entity_index(event: ProcessedEvent, config: AggregationConfig) -> int:
    """Position of the event's entity in the configuration (lower sorts first)."""
    if event.matched_entity is not None:
        return event.matched_entity.order
    for index, entity in enumerate(config.entities):
        if entity.entity == event.entity_id:
            return index
    return sys.maxsize


def build_day_slot(
    day: date,
    *,
    config: AggregationConfig,
    translations: Translations,
    tz: tzinfo,
    events: Sequence[ProcessedEvent] = (),
) -> DaySlot:
    return DaySlot(
        date_key=day.isoformat(),
        weekday_label=translations.days_of_week[day.weekday()],
        day_number=day.day,
        month_label=translations.months[day.month - 1],
        month_number=day.month,
        timestamp=start_of_day(day, tz),
        week_number=week_number_with_majority_rule(day, config.show_week_numbers, config.first_weekday),
        is_first_of_month=day.day == 1,
        is_first_of_week=day.weekday() == config.first_weekday,
        events=list(events),
    )


def is_upcoming_event(
    event: ProcessedEvent,
    *,
    reference_start: datetime,
    now: datetime,
    show_past_events: bool,
) -> bool:
    tz = reference_start.tzinfo
    start, end = event_bounds(event, tz)
    reference_end = end_of_day(reference_start.date(), tz)

    starts_on_reference = reference_start <= start <= reference_end
    is_future = start > reference_end
    is_ongoing = end >= reference_start
    if not (starts_on_reference or is_future or is_ongoing):
        return False

    # Past all-day events stay visible for the whole day.
    if not show_past_events and not event.is_all_day and end < now:
        return False
    return True


def display_date(event: ProcessedEvent, reference_start: datetime) -> date:
    start, end = event_bounds(event, reference_start.tzinfo)
    reference_day = reference_start.date()
    if start >= reference_start:
        return start.date()
    if end.date() == reference_day:
        return reference_day
    if start < reference_start < end:
        return reference_day
    return start.date()


def _within_day_sort_key(event: ProcessedEvent, config: AggregationConfig, tz: tzinfo) -> tuple:
    start, _ = event_bounds(event, tz)
    if event.is_all_day:
        return (0, start, entity_index(event, config), event.summary.casefold())
    return (1, start, 0, "")


def group_events_by_day(
    events: Sequence[ProcessedEvent],
    config: AggregationConfig,
    *,
    reference_start: datetime,
    now: datetime,
    translations: Translations,
) -> list[DaySlot]:
    """Bucket events into day slots relative to ``reference_start``.

    Returns one slot per date that has at least one surviving event, in
    ascending date order.
    """
    tz = reference_start.tzinfo
    buckets: dict[date, list[ProcessedEvent]] = {}

    for event in events:
        if not is_upcoming_event(
            event,
            reference_start=reference_start,
            now=now,
            show_past_events=config.show_past_events,
        ):
            continue
        buckets.setdefault(display_date(event, reference_start), []).append(event)

    days: list[DaySlot] = []
    for day in sorted(buckets):
        day_events = sorted(buckets[day], key=lambda event: _within_day_sort_key(event, config, tz))
        days.append(
            build_day_slot(day, config=config, translations=translations, tz=tz, events=day_events)
        )

    LOGGER.debug("Grouped %s events into %s days", sum(len(day.events) for day in days), len(days))
    return days
