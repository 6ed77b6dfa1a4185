from .compaction import compact_days, effective_day_count
from .grouping import group_events_by_day
from .layout import layout_day
from .processing import process_events
from .service import Clock, SystemClock, aggregate, fetch_event_data
from .window import navigate, resolve_reference_date, resolve_time_window

__all__ = [
    "Clock",
    "SystemClock",
    "aggregate",
    "compact_days",
    "effective_day_count",
    "fetch_event_data",
    "group_events_by_day",
    "layout_day",
    "navigate",
    "process_events",
    "resolve_reference_date",
    "resolve_time_window",
]
