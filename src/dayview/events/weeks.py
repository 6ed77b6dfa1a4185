from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Literal

WeekNumbering = Literal["iso", "simple"] | None


def iso_week_number(day: date) -> int:
    return day.isocalendar().week


def simple_week_number(day: date, first_weekday: int) -> int:
    """Week of the year counted from January 1st, weeks starting on ``first_weekday``."""
    jan_first = date(day.year, 1, 1)
    offset = (jan_first.weekday() - first_weekday) % 7
    return ((day - jan_first).days + offset) // 7 + 1


def week_number(day: date, numbering: WeekNumbering, first_weekday: int) -> int | None:
    if numbering == "iso":
        return iso_week_number(day)
    if numbering == "simple":
        return simple_week_number(day, first_weekday)
    return None


def week_number_with_majority_rule(day: date, numbering: WeekNumbering, first_weekday: int) -> int | None:
    # A Sunday-first week holds six days of the next ISO week.
    if numbering == "iso" and first_weekday == calendar.SUNDAY and day.weekday() == calendar.SUNDAY:
        return iso_week_number(day + timedelta(days=1))
    return week_number(day, numbering, first_weekday)
