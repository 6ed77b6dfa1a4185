from __future__ import annotations

import json
import logging
from datetime import date, datetime, tzinfo
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from ...domain.models import AllDay, RawEvent, Timed
from .base import CalendarAdapterError

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10
USER_AGENT = "dayview/0.1"


def _parse_boundary(value: Any, *, field_name: str, default_timezone: tzinfo) -> AllDay | Timed:
    if not isinstance(value, dict):
        raise CalendarAdapterError(f"Event {field_name} must be an object")

    date_time = value.get("dateTime")
    date_value = value.get("date")
    if date_time and date_value:
        raise CalendarAdapterError(f"Event {field_name} has both date and dateTime")

    if isinstance(date_time, str) and date_time.strip():
        try:
            parsed = datetime.fromisoformat(date_time.strip())
        except ValueError as exc:
            raise CalendarAdapterError(f"Invalid {field_name}.dateTime: {date_time}") from exc
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=default_timezone)
        return Timed(instant=parsed)

    if isinstance(date_value, str) and date_value.strip():
        try:
            return AllDay(date=date.fromisoformat(date_value.strip()))
        except ValueError as exc:
            raise CalendarAdapterError(f"Invalid {field_name}.date: {date_value}") from exc

    raise CalendarAdapterError(f"Event {field_name} has neither date nor dateTime")


def _optional_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text or None


def raw_event_from_payload(
    item: dict[str, Any],
    entity_id: str,
    *,
    default_timezone: tzinfo,
) -> RawEvent:
    """Convert one ``{summary, start{date|dateTime}, end{...}}`` item."""
    start = _parse_boundary(item.get("start"), field_name="start", default_timezone=default_timezone)
    end = _parse_boundary(item.get("end"), field_name="end", default_timezone=default_timezone)
    summary = item.get("summary")
    try:
        return RawEvent(
            entity_id=entity_id,
            summary=summary.strip() if isinstance(summary, str) else "",
            description=_optional_text(item.get("description")),
            location=_optional_text(item.get("location")),
            start=start,
            end=end,
        )
    except ValidationError as exc:
        raise CalendarAdapterError(f"Invalid event payload for {entity_id}") from exc


class HomeAssistantCalendarSource:
    """Reads events from the Home Assistant ``/api/calendars/<entity>`` endpoint."""

    def __init__(self, *, base_url: str, token: str, timezone_name: str) -> None:
        self._base_url = base_url.strip().rstrip("/")
        self._token = token.strip()
        try:
            self._timezone = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise CalendarAdapterError(f"Unknown timezone for calendar adapter: {timezone_name}") from exc

    def _build_url(self, entity_id: str, window_start: datetime, window_end: datetime) -> str:
        query = urlencode({"start": window_start.isoformat(), "end": window_end.isoformat()})
        return f"{self._base_url}/api/calendars/{quote(entity_id, safe='')}?{query}"

    def _fetch_json(self, url: str) -> Any:
        request = Request(
            url,
            headers={
                "Authorization": f"Bearer {self._token}",
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            },
        )
        try:
            with urlopen(request, timeout=DEFAULT_TIMEOUT_SECONDS) as response:
                return json.loads(response.read().decode("utf-8"))
        except (HTTPError, URLError, TimeoutError, OSError) as exc:
            raise CalendarAdapterError(f"Unable to fetch calendar events: {url}") from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CalendarAdapterError(f"Unable to decode calendar payload: {url}") from exc

    def fetch_entity_events(
        self,
        entity_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> list[RawEvent]:
        url = self._build_url(entity_id, window_start, window_end)
        LOGGER.info("Fetching calendar events with path: %s", url)
        payload = self._fetch_json(url)
        if not isinstance(payload, list):
            raise CalendarAdapterError(f"Invalid response for {entity_id}")

        events: list[RawEvent] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            try:
                events.append(raw_event_from_payload(item, entity_id, default_timezone=self._timezone))
            except CalendarAdapterError as exc:
                LOGGER.warning("Skipping event from %s: %s", entity_id, exc)
        return events
