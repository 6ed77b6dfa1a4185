from __future__ import annotations

import calendar
from datetime import date

import pytest

from dayview.domain.models import AggregationConfig
from dayview.domain.translations import GERMAN, get_translations
from dayview.events.grouping import display_date, group_events_by_day
from dayview.events.processing import process_events
from dayview.events.weeks import simple_week_number, week_number_with_majority_rule

from factories import BERLIN, all_day_event, local, timed_event

REFERENCE = local(2025, 6, 10)


def _group(raw_events, config, *, now, translations):
    processed = process_events(raw_events, config, BERLIN)
    return group_events_by_day(
        processed,
        config,
        reference_start=REFERENCE,
        now=now,
        translations=translations,
    )


class TestDisplayDate:
    def test_running_event_from_yesterday_shows_on_reference_day(self, clock, translations):
        config = AggregationConfig(entities=["calendar.a"])
        event = timed_event("calendar.a", "Night shift", local(2025, 6, 9, 22), local(2025, 6, 10, 11))

        (day,) = _group([event], config, now=clock.now(), translations=translations)

        assert day.date_key == "2025-06-10"

    def test_ongoing_all_day_range_shows_on_reference_day(self, clock, translations):
        config = AggregationConfig(entities=["calendar.a"])
        (processed,) = process_events(
            [all_day_event("calendar.a", "Vacation", date(2025, 6, 8), date(2025, 6, 13))],
            config,
            BERLIN,
        )

        assert display_date(processed, REFERENCE) == date(2025, 6, 10)

    def test_future_event_shows_on_its_start_date(self, clock, translations):
        config = AggregationConfig(entities=["calendar.a"])
        event = timed_event("calendar.a", "Dentist", local(2025, 6, 12, 14), local(2025, 6, 12, 15))

        (day,) = _group([event], config, now=clock.now(), translations=translations)

        assert day.date_key == "2025-06-12"
        assert day.weekday_label == "Thu"
        assert day.month_label == "Jun"
        assert day.timestamp == local(2025, 6, 12)

    def test_event_that_ended_before_reference_is_dropped(self, clock, translations):
        config = AggregationConfig(entities=["calendar.a"], show_past_events=True)
        event = timed_event("calendar.a", "Yesterday", local(2025, 6, 9, 8), local(2025, 6, 9, 9))

        assert _group([event], config, now=clock.now(), translations=translations) == []


class TestPastEvents:
    def _morning(self):
        return timed_event("calendar.a", "Breakfast", local(2025, 6, 10, 7), local(2025, 6, 10, 8))

    def test_finished_timed_event_is_hidden(self, clock, translations):
        config = AggregationConfig(entities=["calendar.a"])

        assert _group([self._morning()], config, now=clock.now(), translations=translations) == []

    def test_finished_timed_event_is_kept_when_past_events_shown(self, clock, translations):
        config = AggregationConfig(entities=["calendar.a"], show_past_events=True)

        (day,) = _group([self._morning()], config, now=clock.now(), translations=translations)

        assert [event.summary for event in day.events] == ["Breakfast"]

    def test_all_day_event_stays_visible_all_day(self, clock, translations):
        config = AggregationConfig(entities=["calendar.a"])
        event = all_day_event("calendar.a", "Holiday", date(2025, 6, 10))

        (day,) = _group([event], config, now=local(2025, 6, 10, 23, 30), translations=translations)

        assert [item.summary for item in day.events] == ["Holiday"]


def test_all_day_events_sort_before_timed_then_by_entity_and_summary(clock, translations):
    config = AggregationConfig(entities=["calendar.b", "calendar.a"])
    events = [
        timed_event("calendar.a", "Early call", local(2025, 6, 11, 8), local(2025, 6, 11, 9)),
        all_day_event("calendar.a", "Alpha", date(2025, 6, 11)),
        all_day_event("calendar.b", "zulu", date(2025, 6, 11)),
        all_day_event("calendar.b", "Bravo", date(2025, 6, 11)),
    ]

    (day,) = _group(events, config, now=clock.now(), translations=translations)

    assert [event.summary for event in day.events] == ["Bravo", "zulu", "Alpha", "Early call"]


def test_days_are_returned_in_date_order(clock, translations):
    config = AggregationConfig(entities=["calendar.a"])
    events = [
        timed_event("calendar.a", "Later", local(2025, 6, 12, 10), local(2025, 6, 12, 11)),
        timed_event("calendar.a", "Sooner", local(2025, 6, 11, 10), local(2025, 6, 11, 11)),
    ]

    days = _group(events, config, now=clock.now(), translations=translations)

    assert [day.date_key for day in days] == ["2025-06-11", "2025-06-12"]


def test_day_slot_flags_and_week_numbers(clock):
    config = AggregationConfig(entities=["calendar.a"], show_week_numbers="iso")
    events = [
        all_day_event("calendar.a", "Monday", date(2025, 6, 16)),
        all_day_event("calendar.a", "July", date(2025, 7, 1)),
    ]

    monday, july_first = _group(events, config, now=clock.now(), translations=GERMAN)

    assert monday.is_first_of_week
    assert monday.week_number == 25
    assert monday.weekday_label == "Mo"
    assert july_first.is_first_of_month
    assert july_first.month_label == "Jul"


def test_week_numbers_are_omitted_when_disabled(clock, translations):
    config = AggregationConfig(entities=["calendar.a"])
    (day,) = _group(
        [all_day_event("calendar.a", "Holiday", date(2025, 6, 10))],
        config,
        now=clock.now(),
        translations=translations,
    )

    assert day.week_number is None


class TestWeekNumbers:
    def test_sunday_first_iso_weeks_use_the_following_monday(self):
        sunday = date(2025, 6, 15)

        assert week_number_with_majority_rule(sunday, "iso", calendar.SUNDAY) == 25
        assert week_number_with_majority_rule(sunday, "iso", calendar.MONDAY) == 24

    @pytest.mark.parametrize(
        ("day", "first_weekday", "expected"),
        [
            (date(2025, 1, 1), calendar.MONDAY, 1),
            (date(2025, 1, 5), calendar.MONDAY, 1),
            (date(2025, 1, 6), calendar.MONDAY, 2),
            (date(2025, 1, 5), calendar.SUNDAY, 2),
        ],
    )
    def test_simple_week_numbers_count_from_january_first(self, day, first_weekday, expected):
        assert simple_week_number(day, first_weekday) == expected

    def test_sunday_first_day_of_week_marks_sundays(self, clock, translations):
        config = AggregationConfig(entities=["calendar.a"], first_day_of_week="sunday")
        (day,) = _group(
            [all_day_event("calendar.a", "Brunch", date(2025, 6, 15))],
            config,
            now=clock.now(),
            translations=translations,
        )

        assert day.is_first_of_week


def test_unknown_language_falls_back_to_english():
    assert get_translations("fr").no_events == "No events"
    assert get_translations("de-AT") is GERMAN
