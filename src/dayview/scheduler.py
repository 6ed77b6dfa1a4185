from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from .adapters.calendar import (
    CalendarAdapterError,
    CalendarSource,
    CalendarSourceRouter,
    HomeAssistantCalendarSource,
    IcsCalendarSource,
    RemoteIcsCalendarSource,
)
from .adapters.weather import OpenMeteoWeatherAdapter, WeatherAdapterError, WeatherSource
from .events import Clock, SystemClock, aggregate
from .events.weather import required_forecast_types
from .settings import AppSettings, CalendarSourceSettings
from .storage import KeyValueStore, SqliteKeyValueStore, StorageError, save_forecasts

LOGGER = logging.getLogger(__name__)


def _build_source(settings: AppSettings, source: CalendarSourceSettings) -> CalendarSource:
    timezone_name = settings.env.dayview_timezone

    if source.type == "ics":
        if source.path is None:
            raise ValueError("calendar source path was missing for type 'ics'")
        source_path = source.path
        if not source_path.is_absolute():
            source_path = (settings.project_root / source_path).resolve()
        return IcsCalendarSource(path=source_path, timezone_name=timezone_name)

    if source.type == "ics_url":
        if source.url is None:
            raise ValueError("calendar source url was missing for type 'ics_url'")
        return RemoteIcsCalendarSource(url=source.url, timezone_name=timezone_name)

    if source.type == "home_assistant":
        if source.url is None:
            raise ValueError("calendar source url was missing for type 'home_assistant'")
        token = source.token or settings.env.dayview_home_assistant_token
        if not token:
            raise ValueError("Home Assistant source needs a token (sources[].token or DAYVIEW_HOME_ASSISTANT_TOKEN)")
        return HomeAssistantCalendarSource(base_url=source.url, token=token, timezone_name=timezone_name)

    raise ValueError(f"Unsupported calendar source type: {source.type}")


def build_calendar_source(settings: AppSettings) -> CalendarSourceRouter:
    """Map every configured source onto the entity ids it serves.

    A Home Assistant source without an ``entity`` serves every entity that
    has no dedicated source.
    """
    router = CalendarSourceRouter()
    for source_settings in settings.yaml.sources:
        source = _build_source(settings, source_settings)
        if source_settings.entity is None:
            router.set_default(source)
        else:
            router.register(source_settings.entity, source)

    if router.default is None:
        routed = set(router.entity_ids)
        for entity in settings.yaml.calendar.entities:
            if entity.entity not in routed:
                LOGGER.warning("No calendar source configured for '%s'", entity.entity)
    return router


def run_calendar_refresh_job(
    settings: AppSettings,
    *,
    source: CalendarSource | None = None,
    store: KeyValueStore | None = None,
    clock: Clock | None = None,
) -> None:
    if source is None:
        try:
            source = build_calendar_source(settings)
        except (CalendarAdapterError, ValueError):
            LOGGER.exception("Calendar refresh job configuration failed")
            return

    try:
        days = aggregate(
            settings.yaml.calendar,
            settings.yaml.instance_id,
            force=True,
            source=source,
            store=store or SqliteKeyValueStore(settings.db_path),
            clock=clock or SystemClock(settings.timezone),
        )
    except StorageError:
        LOGGER.exception("Calendar refresh job could not reach the event store")
        return
    except Exception:  # pragma: no cover - defensive fallback
        LOGGER.exception("Calendar refresh job failed")
        return

    LOGGER.info(
        "Calendar refresh job updated '%s' with %s days",
        settings.yaml.instance_id,
        len(days),
    )


def build_weather_source(settings: AppSettings) -> OpenMeteoWeatherAdapter:
    provider = settings.yaml.weather.provider
    if provider != "open_meteo":
        raise ValueError(f"Unsupported weather provider: {provider}")
    return OpenMeteoWeatherAdapter(
        units=settings.yaml.weather.units,
        timezone_name=settings.env.dayview_timezone,
    )


def run_weather_refresh_job(
    settings: AppSettings,
    *,
    source: WeatherSource | None = None,
    store: KeyValueStore | None = None,
) -> None:
    weather = settings.yaml.weather
    forecast_types = required_forecast_types(weather)
    if not forecast_types:
        LOGGER.debug("Weather is not configured, skipping forecast refresh")
        return

    try:
        adapter = source or build_weather_source(settings)
        snapshot = adapter.get_forecasts(
            weather.latitude,
            weather.longitude,
            days=weather.forecast_days,
            forecast_types=forecast_types,
        )
    except (WeatherAdapterError, ValueError):
        LOGGER.exception("Weather refresh job failed")
        return
    except Exception:  # pragma: no cover - defensive fallback
        LOGGER.exception("Weather refresh job failed")
        return

    if not save_forecasts(store or SqliteKeyValueStore(settings.db_path), settings.yaml.instance_id, snapshot):
        return
    LOGGER.info(
        "Weather refresh job stored %s daily and %s hourly forecasts",
        len(snapshot.daily),
        len(snapshot.hourly),
    )


def build_scheduler(
    settings: AppSettings,
    *,
    source: CalendarSource | None = None,
    store: KeyValueStore | None = None,
    clock: Clock | None = None,
    weather_source: WeatherSource | None = None,
) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=settings.timezone)
    scheduler.add_job(
        run_calendar_refresh_job,
        "interval",
        kwargs={"settings": settings, "source": source, "store": store, "clock": clock},
        minutes=settings.yaml.calendar.refresh_interval,
        jitter=settings.yaml.refresh.jitter_seconds,
        id="calendar_refresh_job",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=120,
    )
    if settings.yaml.weather.enabled:
        scheduler.add_job(
            run_weather_refresh_job,
            "interval",
            kwargs={"settings": settings, "source": weather_source, "store": store},
            minutes=settings.yaml.weather.refresh_interval,
            jitter=settings.yaml.refresh.jitter_seconds,
            id="weather_refresh_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=120,
        )
    return scheduler
