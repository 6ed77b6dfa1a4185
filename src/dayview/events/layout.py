from __future__ import annotations

from datetime import date, datetime, tzinfo
from typing import Sequence

from ..domain.models import GridSlot, ProcessedEvent, Timed

MINUTES_PER_DAY = 24 * 60


def _minute_of_day(instant: datetime) -> int:
    return instant.hour * 60 + instant.minute


def layout_day(events: Sequence[ProcessedEvent], day: date, tz: tzinfo) -> list[GridSlot]:
    """Assign grid lanes to the timed events shown on ``day``.

    An event that began on an earlier day starts at minute 0; one that runs
    past ``day`` ends at the last minute of the grid.

    Events are taken in start order; each goes to the lowest lane that is
    free at its start, or opens a new lane. Every slot reports the final
    lane count of the day. Ties keep their input order.
    """
    timed: list[tuple[ProcessedEvent, int, int]] = []
    for event in events:
        start, end = event.start, event.end
        if event.is_empty_placeholder or not isinstance(start, Timed) or not isinstance(end, Timed):
            continue
        local_start = start.instant.astimezone(tz)
        local_end = end.instant.astimezone(tz)
        start_minute = 0 if local_start.date() < day else _minute_of_day(local_start)
        end_minute = MINUTES_PER_DAY if local_end.date() > day else _minute_of_day(local_end)
        timed.append((event, start_minute, end_minute))
    timed.sort(key=lambda item: item[1])

    lane_ends: list[int] = []
    placed: list[tuple[ProcessedEvent, int, int, int]] = []
    for event, start_minute, end_minute in timed:
        lane = next((index for index, lane_end in enumerate(lane_ends) if lane_end <= start_minute), None)
        if lane is None:
            lane = len(lane_ends)
            lane_ends.append(end_minute)
        else:
            lane_ends[lane] = end_minute
        placed.append((event, start_minute, end_minute, lane))

    lane_count = len(lane_ends)
    return [
        GridSlot(
            event=event,
            start_minute=start_minute,
            end_minute=end_minute,
            lane=lane,
            lane_count=lane_count,
        )
        for event, start_minute, end_minute, lane in placed
    ]
