from .base import CalendarAdapterError, CalendarSource
from .home_assistant import HomeAssistantCalendarSource, raw_event_from_payload
from .ics import IcsCalendarSource, RemoteIcsCalendarSource
from .router import CalendarSourceRouter

__all__ = [
    "CalendarAdapterError",
    "CalendarSource",
    "CalendarSourceRouter",
    "HomeAssistantCalendarSource",
    "IcsCalendarSource",
    "RemoteIcsCalendarSource",
    "raw_event_from_payload",
]
