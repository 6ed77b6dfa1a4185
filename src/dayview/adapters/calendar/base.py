from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ...domain.models import RawEvent


class CalendarAdapterError(RuntimeError):
    """Raised when calendar events cannot be loaded from a provider."""


class CalendarSource(Protocol):
    def fetch_entity_events(
        self,
        entity_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> list[RawEvent]:
        """Return raw events of ``entity_id`` that overlap the window."""
