from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Iterable, Iterator, NamedTuple
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from ...domain.models import AllDay, RawEvent, Timed
from .base import CalendarAdapterError

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10
USER_AGENT = "dayview/0.1"
TEXT_PROPERTIES = ("SUMMARY", "DESCRIPTION", "LOCATION")

_ESCAPE_PATTERN = re.compile(r"\\([\\;,nN])")


class IcsProperty(NamedTuple):
    name: str
    params: dict[str, str]
    value: str


def _decode(payload: bytes, origin: str) -> str:
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CalendarAdapterError(f"Unable to decode ICS payload from {origin}") from exc


def read_ics_file(path: Path) -> str:
    try:
        payload = path.read_bytes()
    except OSError as exc:
        raise CalendarAdapterError(f"Unable to read ICS file: {path}") from exc
    return _decode(payload, str(path))


def fetch_ics_url(url: str) -> str:
    request = Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urlopen(request, timeout=DEFAULT_TIMEOUT_SECONDS) as response:
            payload = response.read()
    except (HTTPError, URLError, TimeoutError, OSError) as exc:
        raise CalendarAdapterError(f"Unable to fetch ICS URL: {url}") from exc
    return _decode(payload, url)


def unfold_lines(raw_text: str) -> Iterator[str]:
    """Join RFC 5545 continuation lines (leading space or tab) onto their parent."""
    pending: str | None = None
    for line in raw_text.splitlines():
        if line[:1] in (" ", "\t") and pending is not None:
            pending += line[1:]
            continue
        if pending is not None:
            yield pending
        pending = line
    if pending is not None:
        yield pending


def unescape_text(value: str) -> str:
    return _ESCAPE_PATTERN.sub(lambda match: "\n" if match.group(1) in "nN" else match.group(1), value)


def parse_property(line: str) -> IcsProperty | None:
    head, separator, value = line.partition(":")
    if not separator:
        return None

    name, *raw_params = head.split(";")
    params: dict[str, str] = {}
    for raw_param in raw_params:
        key, has_value, param_value = raw_param.partition("=")
        if has_value:
            params[key.strip().upper()] = param_value.strip().strip('"')
    return IcsProperty(name.strip().upper(), params, value.strip())


def iter_vevents(lines: Iterable[str]) -> Iterator[dict[str, IcsProperty]]:
    """Yield the properties of each VEVENT block, first occurrence per name."""
    properties: dict[str, IcsProperty] | None = None
    for line in lines:
        marker = line.strip().upper()
        if marker == "BEGIN:VEVENT":
            properties = {}
        elif marker == "END:VEVENT":
            if properties is not None:
                yield properties
            properties = None
        elif properties is not None and line.strip():
            prop = parse_property(line)
            if prop is not None:
                properties.setdefault(prop.name, prop)


def _resolve_zone(tzid: str | None, default_timezone: tzinfo) -> tzinfo:
    if not tzid:
        return default_timezone
    try:
        return ZoneInfo(tzid)
    except (ZoneInfoNotFoundError, ValueError):
        LOGGER.debug("Unknown TZID %s, using %s", tzid, default_timezone)
        return default_timezone


def _parse_instant(prop: IcsProperty, default_timezone: tzinfo) -> datetime:
    text = prop.value
    utc = text.endswith("Z")
    if utc:
        text = text[:-1]

    for fmt in ("%Y%m%dT%H%M%S", "%Y%m%dT%H%M"):
        try:
            parsed = datetime.strptime(text, fmt)
            break
        except ValueError:
            continue
    else:
        raise CalendarAdapterError(f"Invalid ICS datetime value: {prop.value}")

    zone = timezone.utc if utc else _resolve_zone(prop.params.get("TZID"), default_timezone)
    return parsed.replace(tzinfo=zone).astimezone(default_timezone)


def _parse_day(prop: IcsProperty) -> date:
    try:
        return datetime.strptime(prop.value, "%Y%m%d").date()
    except ValueError as exc:
        raise CalendarAdapterError(f"Invalid ICS date value: {prop.value}") from exc


def _is_date_value(prop: IcsProperty) -> bool:
    return prop.params.get("VALUE", "").upper() == "DATE" or "T" not in prop.value


def _boundaries(
    dtstart: IcsProperty,
    dtend: IcsProperty | None,
    default_timezone: tzinfo,
) -> tuple[AllDay | Timed, AllDay | Timed]:
    start_is_date = _is_date_value(dtstart)
    end_is_date = dtend is None or _is_date_value(dtend)

    if start_is_date and end_is_date:
        start_day = _parse_day(dtstart)
        end_day = _parse_day(dtend) if dtend is not None else start_day + timedelta(days=1)
        if end_day <= start_day:
            end_day = start_day + timedelta(days=1)
        return AllDay(date=start_day), AllDay(date=end_day)

    # Mixed DATE / DATE-TIME pairs are read as timed, dates at local midnight.
    def instant(prop: IcsProperty) -> datetime:
        if _is_date_value(prop):
            return datetime.combine(_parse_day(prop), time.min, tzinfo=default_timezone)
        return _parse_instant(prop, default_timezone)

    start = instant(dtstart)
    end = instant(dtend) if dtend is not None else start + timedelta(hours=1)
    if end <= start:
        end = start + timedelta(minutes=30)
    return Timed(instant=start), Timed(instant=end)


def event_from_properties(
    properties: dict[str, IcsProperty],
    entity_id: str,
    default_timezone: tzinfo,
) -> RawEvent | None:
    dtstart = properties.get("DTSTART")
    if dtstart is None:
        return None

    start, end = _boundaries(dtstart, properties.get("DTEND"), default_timezone)
    text = {
        name: unescape_text(properties[name].value).strip()
        for name in TEXT_PROPERTIES
        if name in properties
    }
    try:
        return RawEvent(
            entity_id=entity_id,
            summary=text.get("SUMMARY", ""),
            description=text.get("DESCRIPTION") or None,
            location=text.get("LOCATION") or None,
            start=start,
            end=end,
        )
    except ValidationError as exc:
        raise CalendarAdapterError(f"Invalid ICS event for {entity_id}") from exc


def _boundary_instant(boundary: AllDay | Timed, default_timezone: tzinfo) -> datetime:
    if isinstance(boundary, AllDay):
        return datetime.combine(boundary.date, time.min, tzinfo=default_timezone)
    return boundary.instant


def events_in_window_from_raw_text(
    *,
    raw_text: str,
    entity_id: str,
    timezone_value: tzinfo,
    window_start: datetime,
    window_end: datetime,
) -> list[RawEvent]:
    """Parse ``raw_text`` and keep the events overlapping the window, in start order."""
    events: list[RawEvent] = []
    for properties in iter_vevents(unfold_lines(raw_text)):
        event = event_from_properties(properties, entity_id, timezone_value)
        if event is None:
            continue
        if _boundary_instant(event.start, timezone_value) > window_end:
            continue
        if _boundary_instant(event.end, timezone_value) <= window_start:
            continue
        events.append(event)

    events.sort(key=lambda event: (_boundary_instant(event.start, timezone_value), event.summary.lower()))
    return events


def _load_timezone(timezone_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise CalendarAdapterError(f"Unknown timezone for calendar adapter: {timezone_name}") from exc


class _IcsSource:
    def __init__(self, timezone_name: str) -> None:
        self._timezone = _load_timezone(timezone_name)

    def _read_text(self) -> str:
        raise NotImplementedError

    def fetch_entity_events(
        self,
        entity_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> list[RawEvent]:
        events = events_in_window_from_raw_text(
            raw_text=self._read_text(),
            entity_id=entity_id,
            timezone_value=self._timezone,
            window_start=window_start,
            window_end=window_end,
        )
        LOGGER.debug("Parsed %s ICS events for '%s'", len(events), entity_id)
        return events


class IcsCalendarSource(_IcsSource):
    """Serves events from a local ``.ics`` file, re-read on every fetch."""

    def __init__(self, *, path: Path, timezone_name: str) -> None:
        super().__init__(timezone_name)
        self._path = Path(path)

    def _read_text(self) -> str:
        return read_ics_file(self._path)


class RemoteIcsCalendarSource(_IcsSource):
    def __init__(self, *, url: str, timezone_name: str) -> None:
        super().__init__(timezone_name)
        self._url = url.strip()

    def _read_text(self) -> str:
        return fetch_ics_url(self._url)
