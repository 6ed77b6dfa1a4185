from __future__ import annotations

import logging
from typing import Sequence

from ..adapters.calendar.base import CalendarAdapterError, CalendarSource
from ..domain.models import EntitySpec, RawEvent, TimeWindow

LOGGER = logging.getLogger(__name__)


def fetch_events(
    source: CalendarSource,
    entities: Sequence[EntitySpec],
    window: TimeWindow,
) -> list[RawEvent]:
    """Fetch raw events for every configured entity, one entity at a time.

    A failing entity is logged and skipped; the remaining entities are still
    fetched. An entity id listed in several config slots is fetched once.
    """
    all_events: list[RawEvent] = []
    fetched_entity_ids: set[str] = set()

    for entity in entities:
        entity_id = entity.entity
        if entity_id in fetched_entity_ids:
            continue

        try:
            events = source.fetch_entity_events(entity_id, window.start, window.end)
        except CalendarAdapterError as exc:
            LOGGER.warning("Calendar source for '%s' failed: %s", entity_id, exc)
            continue
        except Exception:  # pragma: no cover - defensive fallback
            LOGGER.exception("Calendar source for '%s' failed", entity_id)
            continue

        all_events.extend(
            event if event.entity_id == entity_id else event.model_copy(update={"entity_id": entity_id})
            for event in events
        )
        fetched_entity_ids.add(entity_id)
        LOGGER.debug("Fetched %s events for '%s'", len(events), entity_id)

    return all_events
