from __future__ import annotations

import calendar
from datetime import date, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_DAYS_TO_SHOW = 3
MAX_DAYS_TO_SHOW = 3660
DEFAULT_REFRESH_INTERVAL_MINUTES = 30
DEFAULT_ENTITY_COLOR = "var(--primary-text-color)"
DEFAULT_ACCENT_COLOR = "#03a9f4"
EMPTY_DAY_ENTITY_ID = "_empty_day_"

FIRST_WEEKDAYS = {
    "monday": calendar.MONDAY,
    "saturday": calendar.SATURDAY,
    "sunday": calendar.SUNDAY,
}


def coerce_days_to_show(value: Any) -> int:
    """Coerce a configured day count to a positive integer, defaulting to 3.

    Counts above ``MAX_DAYS_TO_SHOW`` fall back to the default as well.
    """
    if isinstance(value, bool):
        return DEFAULT_DAYS_TO_SHOW
    try:
        days = int(str(value).strip())
    except (TypeError, ValueError):
        return DEFAULT_DAYS_TO_SHOW
    if days <= 0 or days > MAX_DAYS_TO_SHOW:
        return DEFAULT_DAYS_TO_SHOW
    return days


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    return text or None


class AllDay(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: Literal["all_day"] = "all_day"
    date: date


class Timed(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: Literal["timed"] = "timed"
    instant: datetime

    @field_validator("instant")
    @classmethod
    def validate_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("timed boundaries must carry a UTC offset")
        return value


DateBoundary = Annotated[Union[AllDay, Timed], Field(discriminator="kind")]


class EntityOverrides(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    show_time: bool | None = None
    show_location: bool | None = None
    compact_events_to_show: int | None = Field(default=None, ge=0)
    split_multiday_events: bool | None = None


OVERRIDE_FIELDS = tuple(EntityOverrides.model_fields)


class EntitySpec(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    entity: str
    color: str = DEFAULT_ENTITY_COLOR
    accent_color: str | None = None
    label: str | None = None
    allowlist: str | None = None
    blocklist: str | None = None
    order: int = Field(default=0, ge=0)
    overrides: EntityOverrides = Field(default_factory=EntityOverrides)

    @model_validator(mode="before")
    @classmethod
    def collect_overrides(cls, data: Any) -> Any:
        # Override keys may be given flat next to the entity id.
        if isinstance(data, str):
            return {"entity": data}
        if not isinstance(data, dict):
            return data

        flat = {key: data[key] for key in OVERRIDE_FIELDS if key in data}
        if not flat:
            return data

        payload = {key: value for key, value in data.items() if key not in OVERRIDE_FIELDS}
        nested = payload.get("overrides") or {}
        if isinstance(nested, EntityOverrides):
            nested = nested.model_dump(exclude_none=True)
        payload["overrides"] = {**nested, **flat}
        return payload

    @field_validator("entity")
    @classmethod
    def validate_entity(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("calendar.entities[].entity must not be empty")
        return text

    @field_validator("label", "allowlist", "blocklist", "accent_color")
    @classmethod
    def validate_optional_text(cls, value: str | None) -> str | None:
        return _optional_text(value)


class AggregationConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    entities: list[EntitySpec] = Field(default_factory=list)
    days_to_show: int = DEFAULT_DAYS_TO_SHOW
    compact_days_to_show: int | None = Field(default=None, ge=1)
    compact_events_to_show: int | None = Field(default=None, ge=0)
    compact_events_complete_days: bool = False
    show_past_events: bool = False
    show_empty_days: bool = False
    start_date: str | None = None
    filter_duplicates: bool = False
    split_multiday_events: bool = False
    show_week_numbers: Literal["iso", "simple"] | None = None
    first_day_of_week: Literal["monday", "sunday", "saturday"] = "monday"
    refresh_interval: int = Field(default=DEFAULT_REFRESH_INTERVAL_MINUTES, ge=1)
    refresh_on_navigate: bool = False
    accent_color: str = DEFAULT_ACCENT_COLOR
    show_time: bool = True
    show_location: bool = True
    language: str = "en"

    @field_validator("entities", mode="before")
    @classmethod
    def assign_entity_order(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("calendar.entities must be a list")

        ordered: list[Any] = []
        for index, item in enumerate(value):
            if isinstance(item, EntitySpec):
                ordered.append(item.model_copy(update={"order": index}))
                continue
            if isinstance(item, str):
                item = {"entity": item}
            if isinstance(item, dict):
                item = {**item, "order": index}
            ordered.append(item)
        return ordered

    @field_validator("days_to_show", mode="before")
    @classmethod
    def validate_days_to_show(cls, value: Any) -> int:
        return coerce_days_to_show(value)

    @field_validator("start_date", mode="before")
    @classmethod
    def validate_start_date(cls, value: Any) -> str | None:
        # YAML turns bare 2025-06-10 into a date object.
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if value is None:
            return None
        return _optional_text(str(value))

    @property
    def first_weekday(self) -> int:
        return FIRST_WEEKDAYS[self.first_day_of_week]


class RawEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    entity_id: str
    summary: str = ""
    description: str | None = None
    location: str | None = None
    start: DateBoundary
    end: DateBoundary

    @model_validator(mode="after")
    def validate_boundaries(self) -> RawEvent:
        if self.start.kind != self.end.kind:
            raise ValueError("event start and end must both be all-day or both be timed")
        if isinstance(self.start, AllDay) and isinstance(self.end, AllDay):
            if self.end.date < self.start.date:
                raise ValueError("event end date must be >= start date")
        elif isinstance(self.start, Timed) and isinstance(self.end, Timed):
            if self.end.instant < self.start.instant:
                raise ValueError("event end must be >= start")
        return self

    @property
    def is_all_day(self) -> bool:
        return isinstance(self.start, AllDay)


class ProcessedEvent(RawEvent):
    matched_entity: EntitySpec | None = None
    entity_label: str | None = None
    dedup_signature: str = ""
    is_empty_placeholder: bool = False


class TimeWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime


class DaySlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    date_key: str
    weekday_label: str
    day_number: int
    month_label: str
    month_number: int
    timestamp: datetime
    week_number: int | None = None
    is_first_of_month: bool = False
    is_first_of_week: bool = False
    events: list[ProcessedEvent] = Field(default_factory=list)

    @property
    def is_placeholder_only(self) -> bool:
        return len(self.events) == 1 and self.events[0].is_empty_placeholder

    @property
    def real_events(self) -> list[ProcessedEvent]:
        return [event for event in self.events if not event.is_empty_placeholder]


class CacheRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    fingerprint: str
    events: list[ProcessedEvent] = Field(default_factory=list)
    written_at: datetime


class GridSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    event: ProcessedEvent
    start_minute: int
    end_minute: int
    lane: int
    lane_count: int


ForecastType = Literal["daily", "hourly"]


class WeatherConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    provider: Literal["open_meteo"] = "open_meteo"
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    units: Literal["metric", "imperial"] = "metric"
    position: Literal["date", "event", "both"] = "date"
    forecast_days: int = Field(default=7, ge=1, le=16)
    refresh_interval: int = Field(default=60, ge=5)

    @model_validator(mode="after")
    def validate_coordinates(self) -> WeatherConfig:
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("weather.latitude and weather.longitude must be set together")
        return self

    @property
    def enabled(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class WeatherForecast(BaseModel):
    """One provider forecast entry; daily entries are valid from local midnight."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    forecast_type: ForecastType
    valid_at: datetime
    condition: str
    temperature: int
    templow: int | None = None
    precipitation: float | None = None
    precipitation_probability: int | None = Field(default=None, ge=0, le=100)


class ForecastSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    daily: list[WeatherForecast] = Field(default_factory=list)
    hourly: list[WeatherForecast] = Field(default_factory=list)
    fetched_at: datetime


class WeatherData(BaseModel):
    model_config = ConfigDict(frozen=True)

    icon: str
    condition: str
    temperature: int
    templow: int | None = None
    valid_at: datetime
    hour: int | None = None
    precipitation: float | None = None
    precipitation_probability: int | None = None
