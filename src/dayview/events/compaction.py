from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Sequence

from ..domain.models import EMPTY_DAY_ENTITY_ID, AggregationConfig, AllDay, DaySlot, ProcessedEvent
from ..domain.translations import Translations
from .grouping import build_day_slot
from .timing import iter_dates

LOGGER = logging.getLogger(__name__)


def effective_day_count(config: AggregationConfig, *, expanded: bool) -> int:
    if expanded:
        return config.days_to_show
    return min(config.compact_days_to_show or config.days_to_show, config.days_to_show)


def empty_day_event(day: date, translations: Translations) -> ProcessedEvent:
    return ProcessedEvent(
        entity_id=EMPTY_DAY_ENTITY_ID,
        summary=translations.no_events,
        start=AllDay(date=day),
        end=AllDay(date=day),
        dedup_signature=f"{EMPTY_DAY_ENTITY_ID}|{day.isoformat()}",
        is_empty_placeholder=True,
    )


def apply_entity_limits(days: Sequence[DaySlot], config: AggregationConfig) -> list[DaySlot]:
    """Cap events per entity config slot that declares ``compact_events_to_show``.

    Counts are kept per ``(entity id, config slot)`` so the same calendar
    listed twice gets two independent budgets.
    """
    counts: dict[tuple[str, int], int] = {}
    limited: list[DaySlot] = []

    for day in days:
        kept: list[ProcessedEvent] = []
        for event in day.events:
            entity = event.matched_entity
            limit = entity.overrides.compact_events_to_show if entity is not None else None
            if event.is_empty_placeholder or entity is None or limit is None:
                kept.append(event)
                continue

            key = (event.entity_id, entity.order)
            count = counts.get(key, 0)
            if count < limit:
                kept.append(event)
                counts[key] = count + 1
        limited.append(day.model_copy(update={"events": kept}))

    if not config.show_empty_days:
        limited = [day for day in limited if day.real_events]
    return limited


def _apply_hard_limit(days: Sequence[DaySlot], max_events: int) -> list[DaySlot]:
    kept: list[DaySlot] = []
    total = 0
    for day in days:
        if day.is_placeholder_only:
            kept.append(day)
            continue
        if total >= max_events:
            break

        remaining = max_events - total
        if day.events:
            limited_day = day.model_copy(update={"events": day.events[:remaining]})
            kept.append(limited_day)
            total += len(limited_day.events)
    return kept


def _apply_complete_days_limit(days: Sequence[DaySlot], max_events: int) -> list[DaySlot]:
    kept: list[DaySlot] = []
    total = 0
    for day in days:
        if day.is_placeholder_only:
            kept.append(day)
            continue
        real_count = len(day.real_events)
        if total >= max_events or real_count == 0:
            continue
        kept.append(day)
        total += real_count
    return kept


def apply_global_limit(
    days: Sequence[DaySlot],
    max_events: int,
    *,
    complete_days: bool = False,
) -> list[DaySlot]:
    """Limit the total number of events shown across days.

    The default mode truncates the day that exhausts the budget. In
    complete-days mode every day started within the budget is kept whole.
    Placeholder-only days never consume budget.
    """
    if complete_days:
        return _apply_complete_days_limit(days, max_events)
    return _apply_hard_limit(days, max_events)


def fill_empty_days(
    days: Sequence[DaySlot],
    config: AggregationConfig,
    *,
    reference_start: datetime,
    expanded: bool,
    day_count: int,
    translations: Translations,
) -> list[DaySlot]:
    # Days emptied by entity limits are re-synthesized as placeholder days.
    days = [day for day in days if day.events]
    if not config.show_empty_days and days:
        return days

    first_day = reference_start.date()
    full_range_end = first_day + timedelta(days=day_count - 1)
    if expanded:
        last_day = full_range_end
    elif not days:
        last_day = full_range_end if config.show_empty_days else first_day
    elif config.compact_events_to_show is not None:
        last_day = max(day.timestamp.date() for day in days)
    else:
        last_day = full_range_end

    existing_keys = {day.date_key for day in days}
    all_days = list(days)
    tz = reference_start.tzinfo
    for day in iter_dates(first_day, last_day):
        if day.isoformat() in existing_keys:
            continue
        all_days.append(
            build_day_slot(
                day,
                config=config,
                translations=translations,
                tz=tz,
                events=[empty_day_event(day, translations)],
            )
        )

    all_days.sort(key=lambda day: day.timestamp)
    return all_days


def compact_days(
    days: Sequence[DaySlot],
    config: AggregationConfig,
    *,
    reference_start: datetime,
    expanded: bool,
    translations: Translations,
) -> list[DaySlot]:
    day_count = effective_day_count(config, expanded=expanded)
    result = list(days[:day_count])

    if not expanded:
        result = apply_entity_limits(result, config)
        if config.compact_events_to_show is not None:
            result = apply_global_limit(
                result,
                config.compact_events_to_show,
                complete_days=config.compact_events_complete_days,
            )

    result = fill_empty_days(
        result,
        config,
        reference_start=reference_start,
        expanded=expanded,
        day_count=day_count,
        translations=translations,
    )
    LOGGER.debug("Compacted to %s days (limit %s)", min(len(result), day_count), day_count)
    return result[:day_count]
