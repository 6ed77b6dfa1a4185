from __future__ import annotations

import logging
import re
from datetime import tzinfo
from typing import Iterable, Sequence

from ..domain.models import (
    AggregationConfig,
    AllDay,
    EntitySpec,
    ProcessedEvent,
    RawEvent,
    Timed,
)
from .timing import ONE_DAY, end_of_day, epoch_millis, iter_dates, start_of_day

LOGGER = logging.getLogger(__name__)


def _compile_pattern(pattern: str, *, kind: str, entity_id: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        LOGGER.warning("Invalid %s pattern for %s: %r (%s)", kind, entity_id, pattern, exc)
        return None


def filter_events_for_entity(events: Sequence[RawEvent], entity: EntitySpec) -> list[RawEvent]:
    """Apply the entity's allowlist, or else its blocklist, to event summaries.

    An invalid pattern disables filtering for this entity only.
    """
    if entity.allowlist:
        allow = _compile_pattern(entity.allowlist, kind="allowlist", entity_id=entity.entity)
        if allow is None:
            return list(events)
        return [event for event in events if event.summary and allow.search(event.summary)]

    if entity.blocklist:
        block = _compile_pattern(entity.blocklist, kind="blocklist", entity_id=entity.entity)
        if block is None:
            return list(events)
        return [event for event in events if not (event.summary and block.search(event.summary))]

    return list(events)


def event_signature(event: RawEvent) -> str:
    start, end = event.start, event.end
    if isinstance(start, Timed) and isinstance(end, Timed):
        time_signature = f"{epoch_millis(start.instant)}|{epoch_millis(end.instant)}"
    elif isinstance(start, AllDay) and isinstance(end, AllDay):
        time_signature = f"{start.date.isoformat()}|{end.date.isoformat()}"
    else:
        time_signature = "|"
    return f"{event.summary}|{time_signature}|{event.location or ''}"


def _to_processed(event: RawEvent, entity: EntitySpec, signature: str) -> ProcessedEvent:
    return ProcessedEvent(
        entity_id=event.entity_id,
        summary=event.summary,
        description=event.description,
        location=event.location,
        start=event.start,
        end=event.end,
        matched_entity=entity,
        entity_label=entity.label,
        dedup_signature=signature,
    )


def should_split_event(event: ProcessedEvent, config: AggregationConfig) -> bool:
    entity = event.matched_entity
    if entity is not None and entity.overrides.split_multiday_events is not None:
        return entity.overrides.split_multiday_events
    return config.split_multiday_events


def is_multi_day_event(event: RawEvent, tz: tzinfo) -> bool:
    start, end = event.start, event.end
    if isinstance(start, AllDay) and isinstance(end, AllDay):
        return (end.date - start.date).days > 1
    if isinstance(start, Timed) and isinstance(end, Timed):
        return end.instant.astimezone(tz).date() > start.instant.astimezone(tz).date()
    return False


def split_multi_day_event(event: ProcessedEvent, tz: tzinfo) -> list[ProcessedEvent]:
    """Split an event into one segment per covered local day.

    Timed events become a timed head segment, all-day middle segments and a
    timed tail segment. Segment signatures get a ``#<index>`` suffix.
    """
    start, end = event.start, event.end
    bounds: list[tuple[AllDay | Timed, AllDay | Timed]] = []

    if isinstance(start, AllDay) and isinstance(end, AllDay):
        for day in iter_dates(start.date, end.date - ONE_DAY):
            bounds.append((AllDay(date=day), AllDay(date=day + ONE_DAY)))
    elif isinstance(start, Timed) and isinstance(end, Timed):
        first_day = start.instant.astimezone(tz).date()
        last_day = end.instant.astimezone(tz).date()
        if last_day <= first_day:
            return [event]
        bounds.append((start, Timed(instant=end_of_day(first_day, tz))))
        for day in iter_dates(first_day + ONE_DAY, last_day - ONE_DAY):
            bounds.append((AllDay(date=day), AllDay(date=day + ONE_DAY)))
        bounds.append((Timed(instant=start_of_day(last_day, tz)), end))

    if not bounds:
        return [event]

    return [
        event.model_copy(
            update={
                "start": segment_start,
                "end": segment_end,
                "dedup_signature": f"{event.dedup_signature}#{index}",
            }
        )
        for index, (segment_start, segment_end) in enumerate(bounds)
    ]


def process_multi_day_events(
    events: Iterable[ProcessedEvent],
    config: AggregationConfig,
    tz: tzinfo,
) -> list[ProcessedEvent]:
    result: list[ProcessedEvent] = []
    for event in events:
        if should_split_event(event, config) and is_multi_day_event(event, tz):
            result.extend(split_multi_day_event(event, tz))
        else:
            result.append(event)
    return result


def process_events(
    raw_events: Sequence[RawEvent],
    config: AggregationConfig,
    tz: tzinfo,
) -> list[ProcessedEvent]:
    """Filter, deduplicate and split raw events, one entity config at a time.

    Entities are visited in configuration order, so with duplicate filtering
    enabled the first listed entity keeps a shared event.
    """
    handled_signatures: set[str] | None = set() if config.filter_duplicates else None
    processed: list[ProcessedEvent] = []

    for entity in config.entities:
        entity_events = [event for event in raw_events if event.entity_id == entity.entity]
        if not entity_events:
            continue

        for event in filter_events_for_entity(entity_events, entity):
            signature = event_signature(event)
            if handled_signatures is not None:
                if signature in handled_signatures:
                    continue
                handled_signatures.add(signature)
            processed.append(_to_processed(event, entity, signature))

    final_events = process_multi_day_events(processed, config, tz)
    LOGGER.debug("Processed %s events after filtering and splitting", len(final_events))
    return final_events
