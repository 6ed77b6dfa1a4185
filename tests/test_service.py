from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

import pytest

from dayview.domain.models import AggregationConfig
from dayview.events import aggregate
from dayview.events.timing import end_of_day
from dayview.storage import MemoryKeyValueStore, fingerprint_for_config

from factories import FakeSource, FixedClock, all_day_event, local, timed_event


@pytest.fixture
def config() -> AggregationConfig:
    return AggregationConfig(
        entities=["calendar.a", {"entity": "calendar.b", "label": "Family"}],
        days_to_show=3,
    )


@pytest.fixture
def source() -> FakeSource:
    return FakeSource(
        [
            timed_event("calendar.a", "Standup", local(2025, 6, 10, 10), local(2025, 6, 10, 10, 15)),
            all_day_event("calendar.b", "School trip", date(2025, 6, 11)),
            timed_event("calendar.b", "Far away", local(2025, 6, 20, 10), local(2025, 6, 20, 11)),
        ]
    )


def _run(config, source, store, clock, **kwargs):
    return aggregate(config, "test", source=source, store=store, clock=clock, **kwargs)


def _dump(days):
    return [day.model_dump() for day in days]


def test_fetch_window_covers_displayed_days(config, source, store, clock):
    _run(config, source, store, clock)

    assert [call[0] for call in source.calls] == ["calendar.a", "calendar.b"]
    _, window_start, window_end = source.calls[0]
    assert window_start == local(2025, 6, 10)
    assert window_end == end_of_day(date(2025, 6, 12), window_start.tzinfo)


def test_events_beyond_the_displayed_range_are_dropped(config, source, store, clock):
    days = _run(config, source, store, clock)

    summaries = [event.summary for day in days for event in day.events]
    assert summaries == ["Standup", "School trip"]


def test_repeated_calls_are_idempotent_and_served_from_cache(config, source, store, clock):
    first = _run(config, source, store, clock)
    second = _run(config, source, store, clock)

    assert _dump(first) == _dump(second)
    assert len(source.calls) == 2


def test_force_bypasses_the_cache(config, source, store, clock):
    _run(config, source, store, clock)
    _run(config, source, store, clock, force=True)

    assert len(source.calls) == 4


def test_expired_cache_triggers_a_refetch(config, source, store, clock):
    _run(config, source, store, clock)
    clock.current += timedelta(minutes=30)
    _run(config, source, store, clock)

    assert len(source.calls) == 4


def test_manual_reload_shortens_the_ttl(source, store, clock):
    config = AggregationConfig(entities=["calendar.a"], refresh_on_navigate=True)
    _run(config, source, store, clock)
    clock.current += timedelta(seconds=10)

    _run(config, source, store, clock, is_manual_reload=lambda: False)
    assert len(source.calls) == 1

    _run(config, source, store, clock, is_manual_reload=lambda: True)
    assert len(source.calls) == 2


def test_failing_entity_does_not_block_the_others(config, store, clock, caplog):
    source = FakeSource(
        [
            timed_event("calendar.a", "Standup", local(2025, 6, 10, 10), local(2025, 6, 10, 10, 15)),
            all_day_event("calendar.b", "School trip", date(2025, 6, 11)),
        ],
        failing={"calendar.a"},
    )

    with caplog.at_level(logging.WARNING):
        days = _run(config, source, store, clock)

    assert [event.summary for day in days for event in day.events] == ["School trip"]
    assert "calendar.a" in caplog.text


def test_active_entities_filter_the_view_not_the_cache(config, source, store, clock):
    only_b = _run(config, source, store, clock, active_entities=["calendar.b"])
    everything = _run(config, source, store, clock)

    assert [event.entity_id for day in only_b for event in day.events] == ["calendar.b"]
    assert {event.entity_id for day in everything for event in day.events} == {"calendar.a", "calendar.b"}
    assert len(source.calls) == 2


def test_entity_listed_twice_is_fetched_once(source, store, clock):
    config = AggregationConfig(
        entities=[
            {"entity": "calendar.a", "allowlist": "stand"},
            {"entity": "calendar.a", "blocklist": "stand"},
        ]
    )

    _run(config, source, store, clock)

    assert [call[0] for call in source.calls] == ["calendar.a"]


def test_storage_failure_still_returns_days(config, source, clock, caplog):
    with caplog.at_level(logging.WARNING):
        days = _run(config, source, MemoryKeyValueStore(max_bytes=8), clock)

    assert [day.date_key for day in days] == ["2025-06-10", "2025-06-11"]
    assert "were not cached" in caplog.text


def test_expanded_view_ignores_compaction(source, store, clock):
    config = AggregationConfig(entities=["calendar.a", "calendar.b"], compact_events_to_show=1)

    compact = _run(config, source, store, clock)
    expanded = _run(config, source, store, clock, expanded=True)

    assert sum(len(day.events) for day in compact) == 1
    assert sum(len(day.events) for day in expanded) == 2


def test_naive_clock_is_rejected(config, source, store):
    with pytest.raises(ValueError):
        _run(config, source, store, FixedClock(datetime(2025, 6, 10, 9, 0)))


def test_language_selects_placeholder_text(store, clock):
    config = AggregationConfig(entities=["calendar.a"], language="de")

    (day,) = _run(config, FakeSource(), store, clock)

    assert day.events[0].summary == "Keine Termine"
    assert day.weekday_label == "Di"


def test_cached_events_follow_changed_entity_settings(store, clock):
    source = FakeSource(
        [
            timed_event("calendar.a", f"Meeting {hour}", local(2025, 6, 10, hour), local(2025, 6, 10, hour, 30))
            for hour in (10, 11, 12)
        ]
    )
    before = AggregationConfig(entities=[{"entity": "calendar.a", "label": "Old", "compact_events_to_show": 1}])
    after = AggregationConfig(entities=[{"entity": "calendar.a", "label": "New", "compact_events_to_show": 3}])
    assert fingerprint_for_config(before, "test") == fingerprint_for_config(after, "test")

    _run(before, source, store, clock)
    days = _run(after, source, store, clock)

    events = [event for day in days for event in day.events]
    assert len(source.calls) == 1
    assert len(events) == 3
    assert {event.entity_label for event in events} == {"New"}
    assert {event.matched_entity.overrides.compact_events_to_show for event in events} == {3}


def test_enabling_multiday_splitting_refetches(store, clock):
    source = FakeSource([all_day_event("calendar.a", "Trip", date(2025, 6, 10), date(2025, 6, 13))])

    _run(AggregationConfig(entities=["calendar.a"]), source, store, clock)
    days = _run(AggregationConfig(entities=["calendar.a"], split_multiday_events=True), source, store, clock)

    assert len(source.calls) == 2
    assert [day.date_key for day in days if day.real_events] == ["2025-06-10", "2025-06-11", "2025-06-12"]


def test_oversized_day_count_is_not_fatal(source, store, clock):
    config = AggregationConfig(entities=["calendar.a", "calendar.b"], days_to_show=3_000_000, show_empty_days=True)

    days = _run(config, source, store, clock)

    assert [day.date_key for day in days] == ["2025-06-10", "2025-06-11", "2025-06-12"]


def test_start_date_at_the_end_of_the_calendar_is_not_fatal(source, store, clock):
    config = AggregationConfig(entities=["calendar.a", "calendar.b"], start_date="9999-12-31")

    days = _run(config, source, store, clock)

    assert [day.date_key for day in days] == ["2025-06-10", "2025-06-11"]
