from __future__ import annotations

import logging
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Iterable, Protocol

from ..adapters.calendar.base import CalendarSource
from ..domain.models import AggregationConfig, DaySlot, EntitySpec, ProcessedEvent
from ..domain.translations import Translations, get_translations
from ..storage.base import KeyValueStore
from ..storage.cache import EventCache, cache_ttl_ms, fingerprint_for_config
from .compaction import compact_days
from .fetcher import fetch_events
from .grouping import group_events_by_day
from .processing import process_events
from .timing import event_bounds
from .window import resolve_reference_date, resolve_time_window

LOGGER = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current time as a timezone-aware local datetime."""


class SystemClock:
    def __init__(self, timezone: tzinfo) -> None:
        self._timezone = timezone

    @property
    def timezone(self) -> tzinfo:
        return self._timezone

    def now(self) -> datetime:
        return datetime.now(self._timezone)


def attach_current_entities(
    events: Iterable[ProcessedEvent],
    config: AggregationConfig,
) -> list[ProcessedEvent]:
    """Point cached events at the entity settings of the current ``config``.

    Cached events carry the entity spec they were processed with; labels,
    colours and limits may have changed since. Events are matched by config
    slot first, then by the first slot with the same entity id.
    """
    by_slot = {(entity.entity, entity.order): entity for entity in config.entities}
    by_id: dict[str, EntitySpec] = {}
    for entity in config.entities:
        by_id.setdefault(entity.entity, entity)

    attached: list[ProcessedEvent] = []
    for event in events:
        previous = event.matched_entity
        entity = None
        if previous is not None:
            entity = by_slot.get((event.entity_id, previous.order))
        entity = entity or by_id.get(event.entity_id)
        if entity is None or entity == previous:
            attached.append(event)
            continue
        attached.append(event.model_copy(update={"matched_entity": entity, "entity_label": entity.label}))
    return attached


def fetch_event_data(
    config: AggregationConfig,
    instance_id: str,
    force: bool = False,
    *,
    source: CalendarSource,
    cache: EventCache,
    now: datetime,
    manual_reload: bool = False,
) -> list[ProcessedEvent]:
    """Return processed events for ``config``, from cache when still fresh."""
    fingerprint = fingerprint_for_config(config, instance_id)

    if not force:
        record = cache.get(fingerprint, cache_ttl_ms(config, manual_reload=manual_reload), now=now)
        if record is not None:
            LOGGER.info("Using %s events from cache", len(record.events))
            return attach_current_entities(record.events, config)

    LOGGER.info("Fetching events from calendar sources")
    window = resolve_time_window(config.days_to_show, config.start_date, now)
    raw_events = fetch_events(source, config.entities, window)
    processed = process_events(raw_events, config, now.tzinfo)

    # Only events that start inside the displayed range are kept.
    limit = resolve_reference_date(config, now) + timedelta(days=config.days_to_show)
    processed = [event for event in processed if event_bounds(event, now.tzinfo)[0] < limit]

    if not cache.put(fingerprint, processed, now=now):
        LOGGER.warning("Events for '%s' were not cached", instance_id)
    return processed


def aggregate(
    config: AggregationConfig,
    instance_id: str,
    force: bool = False,
    *,
    source: CalendarSource,
    store: KeyValueStore,
    clock: Clock,
    expanded: bool = False,
    active_entities: Iterable[str] | None = None,
    is_manual_reload: Callable[[], bool] | None = None,
    translations: Translations | None = None,
) -> list[DaySlot]:
    """Fetch (or reuse cached) events and build the day-by-day view.

    ``active_entities`` restricts the view to the given entity ids; ``None``
    shows every configured entity.
    """
    now = clock.now()
    if now.tzinfo is None:
        raise ValueError("clock must return timezone-aware datetimes")

    manual_reload = bool(is_manual_reload()) if is_manual_reload is not None else False
    events = fetch_event_data(
        config,
        instance_id,
        force,
        source=source,
        cache=EventCache(store),
        now=now,
        manual_reload=manual_reload,
    )

    if active_entities is not None:
        active = set(active_entities)
        events = [event for event in events if event.entity_id in active]

    reference_start = resolve_reference_date(config, now)
    translations = translations or get_translations(config.language)
    days = group_events_by_day(
        events,
        config,
        reference_start=reference_start,
        now=now,
        translations=translations,
    )
    return compact_days(
        days,
        config,
        reference_start=reference_start,
        expanded=expanded,
        translations=translations,
    )
