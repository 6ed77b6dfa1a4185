from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Translations(BaseModel):
    """Display strings used by the grouping engine.

    Weekday names are indexed like ``date.weekday()`` (Monday first).
    """

    model_config = ConfigDict(frozen=True)

    days_of_week: list[str] = Field(min_length=7, max_length=7)
    months: list[str] = Field(min_length=12, max_length=12)
    no_events: str


ENGLISH = Translations(
    days_of_week=["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"],
    months=["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"],
    no_events="No events",
)

GERMAN = Translations(
    days_of_week=["Mo", "Di", "Mi", "Do", "Fr", "Sa", "So"],
    months=["Jan", "Feb", "Mär", "Apr", "Mai", "Jun", "Jul", "Aug", "Sep", "Okt", "Nov", "Dez"],
    no_events="Keine Termine",
)

TRANSLATIONS = {
    "en": ENGLISH,
    "de": GERMAN,
}


def get_translations(language: str | None) -> Translations:
    code = (language or "").strip().lower().split("-", 1)[0]
    return TRANSLATIONS.get(code, ENGLISH)
