from __future__ import annotations

from datetime import date

from dayview.domain.models import AggregationConfig
from dayview.domain.translations import ENGLISH
from dayview.events.compaction import empty_day_event
from dayview.events.layout import MINUTES_PER_DAY, layout_day
from dayview.events.processing import process_events

from factories import BERLIN, all_day_event, local, timed_event

DAY = date(2025, 6, 10)


def _processed(raw_events):
    config = AggregationConfig(entities=sorted({event.entity_id for event in raw_events}))
    return process_events(raw_events, config, BERLIN)


def test_overlapping_events_get_separate_lanes():
    events = _processed(
        [
            timed_event("calendar.a", "First", local(2025, 6, 10, 0, 0), local(2025, 6, 10, 1, 0)),
            timed_event("calendar.a", "Second", local(2025, 6, 10, 0, 30), local(2025, 6, 10, 1, 30)),
            timed_event("calendar.a", "Third", local(2025, 6, 10, 2, 0), local(2025, 6, 10, 3, 0)),
        ]
    )

    slots = layout_day(events, DAY, BERLIN)

    assert [(slot.start_minute, slot.end_minute) for slot in slots] == [(0, 60), (30, 90), (120, 180)]
    assert [slot.lane for slot in slots] == [0, 1, 0]
    assert {slot.lane_count for slot in slots} == {2}


def test_back_to_back_events_share_a_lane():
    events = _processed(
        [
            timed_event("calendar.a", "Morning", local(2025, 6, 10, 9), local(2025, 6, 10, 10)),
            timed_event("calendar.a", "Next", local(2025, 6, 10, 10), local(2025, 6, 10, 11)),
        ]
    )

    slots = layout_day(events, DAY, BERLIN)

    assert [slot.lane for slot in slots] == [0, 0]
    assert slots[0].lane_count == 1


def test_all_day_events_and_placeholders_are_not_placed():
    events = _processed(
        [
            all_day_event("calendar.a", "Holiday", date(2025, 6, 10)),
            timed_event("calendar.a", "Call", local(2025, 6, 10, 9), local(2025, 6, 10, 10)),
        ]
    )
    events.append(empty_day_event(date(2025, 6, 10), ENGLISH))

    slots = layout_day(events, DAY, BERLIN)

    assert [slot.event.summary for slot in slots] == ["Call"]


def test_event_running_past_midnight_is_clamped_to_end_of_day():
    events = _processed(
        [timed_event("calendar.a", "Party", local(2025, 6, 10, 22), local(2025, 6, 11, 2))]
    )

    (slot,) = layout_day(events, DAY, BERLIN)

    assert slot.start_minute == 22 * 60
    assert slot.end_minute == MINUTES_PER_DAY


def test_event_carried_over_from_yesterday_starts_at_midnight():
    events = _processed(
        [timed_event("calendar.a", "Night shift", local(2025, 6, 9, 22), local(2025, 6, 10, 10))]
    )

    (slot,) = layout_day(events, DAY, BERLIN)

    assert (slot.start_minute, slot.end_minute) == (0, 600)


def test_event_spanning_the_whole_day_fills_the_grid():
    events = _processed(
        [timed_event("calendar.a", "Conference", local(2025, 6, 9, 8), local(2025, 6, 11, 18))]
    )

    (slot,) = layout_day(events, DAY, BERLIN)

    assert (slot.start_minute, slot.end_minute) == (0, MINUTES_PER_DAY)


def test_events_in_one_lane_never_overlap():
    starts = [(8, 0), (8, 15), (8, 45), (9, 0), (9, 10), (10, 0), (10, 5), (11, 30)]
    events = _processed(
        [
            timed_event(
                "calendar.a",
                f"Event {index}",
                local(2025, 6, 10, hour, minute),
                local(2025, 6, 10, hour + 1, minute),
            )
            for index, (hour, minute) in enumerate(starts)
        ]
    )

    slots = layout_day(events, DAY, BERLIN)

    lane_count = slots[0].lane_count
    for slot in slots:
        assert 0 <= slot.lane < slot.lane_count == lane_count
    for index, slot in enumerate(slots):
        for other in slots[index + 1 :]:
            if slot.lane == other.lane:
                assert slot.end_minute <= other.start_minute or other.end_minute <= slot.start_minute


def test_empty_day_has_no_slots():
    assert layout_day([], DAY, BERLIN) == []
