from __future__ import annotations

from datetime import datetime
from typing import Mapping

from ...domain.models import RawEvent
from .base import CalendarAdapterError, CalendarSource


class CalendarSourceRouter:
    """Dispatches each entity id to the source configured for it."""

    def __init__(
        self,
        sources: Mapping[str, CalendarSource] | None = None,
        *,
        default: CalendarSource | None = None,
    ) -> None:
        self._sources: dict[str, CalendarSource] = dict(sources or {})
        self._default = default

    def register(self, entity_id: str, source: CalendarSource) -> None:
        self._sources[entity_id] = source

    def set_default(self, source: CalendarSource | None) -> None:
        self._default = source

    @property
    def default(self) -> CalendarSource | None:
        return self._default

    @property
    def entity_ids(self) -> list[str]:
        return list(self._sources)

    def fetch_entity_events(
        self,
        entity_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> list[RawEvent]:
        source = self._sources.get(entity_id, self._default)
        if source is None:
            raise CalendarAdapterError(f"No calendar source configured for {entity_id}")
        return source.fetch_entity_events(entity_id, window_start, window_end)
