from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .adapters.calendar import CalendarSource
from .adapters.weather import WeatherSource
from .domain.models import AggregationConfig, DaySlot, ProcessedEvent, WeatherData
from .events import Clock, SystemClock, aggregate, layout_day, navigate, resolve_reference_date
from .events.entities import entity_accent_color, entity_color, entity_label, entity_setting
from .events.timing import event_progress, is_event_running
from .events.weather import ForecastIndex, find_daily_forecast, find_forecast_for_event, index_forecasts
from .scheduler import build_calendar_source, build_scheduler, run_calendar_refresh_job, run_weather_refresh_job
from .settings import AppSettings, load_settings
from .storage import SqliteKeyValueStore, load_forecasts
from .storage.db import initialize_database

MANUAL_RELOAD_DIRECTIVES = ("no-cache", "max-age=0")


def _get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def _is_manual_reload(request: Request) -> bool:
    cache_control = request.headers.get("cache-control", "").lower()
    directives = {part.strip() for part in cache_control.split(",")}
    return any(directive in directives for directive in MANUAL_RELOAD_DIRECTIVES)


def _parse_calendars(raw_value: str | None) -> list[str] | None:
    if raw_value is None:
        return None
    return [item.strip() for item in raw_value.split(",") if item.strip()]


def _dump_weather(data: WeatherData | None) -> dict[str, Any] | None:
    if data is None:
        return None
    return data.model_dump(mode="json")


def _load_forecast_index(request: Request, now: datetime) -> ForecastIndex | None:
    settings = _get_settings(request)
    weather = settings.yaml.weather
    if not weather.enabled:
        return None
    snapshot = load_forecasts(
        request.app.state.store,
        settings.yaml.instance_id,
        max_age=timedelta(minutes=weather.refresh_interval * 2),
        now=now,
    )
    if snapshot is None:
        return None
    return index_forecasts(snapshot, now.tzinfo)


def _serialize_event(
    event: ProcessedEvent,
    config: AggregationConfig,
    now: datetime,
    *,
    forecasts: ForecastIndex | None = None,
    weather_position: str = "date",
) -> dict[str, Any]:
    payload = event.model_dump(mode="json", exclude={"matched_entity"})
    if event.is_empty_placeholder:
        return payload

    payload.update(
        {
            "color": entity_color(event, config),
            "accent_color": entity_accent_color(event, config),
            "label": entity_label(event, config),
            "show_time": entity_setting(event, "show_time", config),
            "show_location": entity_setting(event, "show_location", config),
            "is_running": is_event_running(event, now),
            "progress": event_progress(event, now),
        }
    )
    if forecasts is not None and weather_position in ("event", "both"):
        payload["weather"] = _dump_weather(find_forecast_for_event(event, forecasts, now.tzinfo))
    return payload


def _serialize_day(
    day: DaySlot,
    config: AggregationConfig,
    now: datetime,
    *,
    forecasts: ForecastIndex | None = None,
    weather_position: str = "date",
) -> dict[str, Any]:
    payload = day.model_dump(mode="json", exclude={"events"})
    payload["events"] = [
        _serialize_event(event, config, now, forecasts=forecasts, weather_position=weather_position)
        for event in day.events
    ]
    if forecasts is not None and weather_position in ("date", "both"):
        payload["weather"] = _dump_weather(find_daily_forecast(day.timestamp.date(), forecasts))
    return payload


def _aggregate_for_request(
    request: Request,
    config: AggregationConfig,
    *,
    expanded: bool,
    force: bool,
    active_entities: list[str] | None = None,
) -> list[DaySlot]:
    settings = _get_settings(request)
    return aggregate(
        config,
        settings.yaml.instance_id,
        force,
        source=request.app.state.source,
        store=request.app.state.store,
        clock=request.app.state.clock,
        expanded=expanded,
        active_entities=active_entities,
        is_manual_reload=lambda: _is_manual_reload(request),
    )


def create_app(
    settings: AppSettings | None = None,
    *,
    source: CalendarSource | None = None,
    clock: Clock | None = None,
    weather_source: WeatherSource | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(application: FastAPI):
        app_settings = settings or load_settings()
        initialize_database(app_settings.db_path)
        app_source = source or build_calendar_source(app_settings)
        app_clock = clock or SystemClock(app_settings.timezone)
        store = SqliteKeyValueStore(app_settings.db_path)

        run_calendar_refresh_job(app_settings, source=app_source, store=store, clock=app_clock)
        run_weather_refresh_job(app_settings, source=weather_source, store=store)
        scheduler = build_scheduler(
            app_settings,
            source=app_source,
            store=store,
            clock=app_clock,
            weather_source=weather_source,
        )
        scheduler.start()

        application.state.settings = app_settings
        application.state.source = app_source
        application.state.clock = app_clock
        application.state.store = store
        application.state.scheduler = scheduler
        application.state.started_at_utc = datetime.now(timezone.utc)

        try:
            yield
        finally:
            if scheduler.running:
                scheduler.shutdown(wait=False)

    application = FastAPI(title="Dayview", version="0.1.0", lifespan=lifespan)

    @application.get("/health", response_class=JSONResponse)
    async def health(request: Request) -> JSONResponse:
        settings = _get_settings(request)
        return JSONResponse(
            {
                "status": "ok",
                "service": "dayview",
                "environment": settings.env.dayview_env,
                "timezone": settings.env.dayview_timezone,
                "instance_id": settings.yaml.instance_id,
                "entities": [entity.entity for entity in settings.yaml.calendar.entities],
                "weather_enabled": settings.yaml.weather.enabled,
                "scheduler_running": request.app.state.scheduler.running,
                "started_at_utc": request.app.state.started_at_utc.isoformat(),
                "timestamp_utc": datetime.now(timezone.utc).isoformat(),
            }
        )

    @application.get("/api/days", response_class=JSONResponse)
    def days(
        request: Request,
        expanded: bool = False,
        force: bool = False,
        calendars: str | None = None,
        start_date: str | None = None,
        offset: int = 0,
    ) -> JSONResponse:
        settings = _get_settings(request)
        now = request.app.state.clock.now()
        config = navigate(settings.yaml.calendar, now, start_date=start_date, offset=offset)
        day_slots = _aggregate_for_request(
            request,
            config,
            expanded=expanded,
            force=force,
            active_entities=_parse_calendars(calendars),
        )
        forecasts = _load_forecast_index(request, now)
        weather_position = settings.yaml.weather.position
        return JSONResponse(
            {
                "instance_id": settings.yaml.instance_id,
                "expanded": expanded,
                "start_date": resolve_reference_date(config, now).date().isoformat(),
                "days_to_show": config.days_to_show,
                "count": len(day_slots),
                "days": [
                    _serialize_day(day, config, now, forecasts=forecasts, weather_position=weather_position)
                    for day in day_slots
                ],
            }
        )

    @application.get("/api/days/{date_key}/grid", response_class=JSONResponse)
    def day_grid(request: Request, date_key: str) -> JSONResponse:
        try:
            day_date = date.fromisoformat(date_key)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="date_key must be YYYY-MM-DD") from exc

        settings = _get_settings(request)
        day_slots = _aggregate_for_request(request, settings.yaml.calendar, expanded=True, force=False)
        day = next((slot for slot in day_slots if slot.date_key == date_key), None)
        if day is None:
            raise HTTPException(status_code=404, detail="Day is not in the displayed range")

        clock: Clock = request.app.state.clock
        slots = layout_day(day.events, day_date, clock.now().tzinfo)
        return JSONResponse(
            {
                "date_key": date_key,
                "lane_count": slots[0].lane_count if slots else 0,
                "slots": [
                    {
                        "event": slot.event.model_dump(mode="json", exclude={"matched_entity"}),
                        "start_minute": slot.start_minute,
                        "end_minute": slot.end_minute,
                        "lane": slot.lane,
                        "lane_count": slot.lane_count,
                    }
                    for slot in slots
                ],
            }
        )

    return application


app = create_app()
