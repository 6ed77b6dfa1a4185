from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from ..domain.models import ForecastSnapshot
from .base import KeyValueStore, StorageError

LOGGER = logging.getLogger(__name__)

FORECAST_KEY_PREFIX = "dayview-weather-"


def forecast_key(instance_id: str) -> str:
    return f"{FORECAST_KEY_PREFIX}{instance_id}"


def save_forecasts(store: KeyValueStore, instance_id: str, snapshot: ForecastSnapshot) -> bool:
    key = forecast_key(instance_id)
    try:
        store.set(key, snapshot.model_dump_json().encode("utf-8"))
    except StorageError:
        LOGGER.exception("Failed to store weather forecasts under '%s'", key)
        return False
    return True


def load_forecasts(
    store: KeyValueStore,
    instance_id: str,
    *,
    max_age: timedelta,
    now: datetime,
) -> ForecastSnapshot | None:
    """Return the stored snapshot unless it is missing, malformed or older than ``max_age``."""
    key = forecast_key(instance_id)
    try:
        raw = store.get(key)
    except StorageError:
        LOGGER.exception("Weather forecast read failed for '%s'", key)
        return None
    if raw is None:
        return None

    try:
        snapshot = ForecastSnapshot.model_validate_json(raw)
    except (ValidationError, ValueError) as exc:
        LOGGER.warning("Discarding malformed weather forecasts '%s': %s", key, exc)
        try:
            store.delete(key)
        except StorageError:
            LOGGER.warning("Unable to evict weather forecasts '%s'", key)
        return None

    fetched_at = snapshot.fetched_at
    if fetched_at.tzinfo is None:
        fetched_at = fetched_at.replace(tzinfo=timezone.utc)
    if now - fetched_at >= max_age:
        LOGGER.info("Weather forecasts under '%s' are stale", key)
        return None
    return snapshot
