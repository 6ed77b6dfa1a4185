from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Iterable, Sequence

from pydantic import ValidationError

from ..domain.models import AggregationConfig, CacheRecord, ProcessedEvent, coerce_days_to_show
from .base import KeyValueStore, StorageError

LOGGER = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "dayview-events-"
CACHE_VERSION = "1"
MANUAL_RELOAD_CACHE_SECONDS = 5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_start_date(start_date: str | None) -> str:
    """Reduce an ISO date-time to its date part so equivalent inputs share a key."""
    if not start_date:
        return ""
    text = start_date.strip()
    if "T" in text:
        return text.split("T", 1)[0]
    return text


def build_fingerprint(
    instance_id: str,
    entity_ids: Iterable[str],
    days_to_show: int,
    show_past_events: bool,
    start_date: str | None,
    filter_duplicates: bool,
    filter_patterns: Sequence[tuple[str, str | None, str | None]] = (),
    split_multiday_events: bool = False,
    split_overrides: Sequence[tuple[str, bool | None]] = (),
) -> str:
    """Derive the cache key for one aggregation request.

    ``filter_patterns`` holds ``(entity_id, allowlist, blocklist)`` per
    configured entity; any pattern change yields a different key.
    ``split_overrides`` holds the per-entity ``split_multiday_events`` flag,
    since cached events are stored already split.
    """
    patterns: list[str] = []
    for entity_id, allowlist, blocklist in filter_patterns:
        if blocklist:
            patterns.append(f"b:{entity_id}:{blocklist}")
        if allowlist:
            patterns.append(f"a:{entity_id}:{allowlist}")

    canonical = json.dumps(
        {
            "entities": sorted(entity_ids),
            "days": coerce_days_to_show(days_to_show),
            "past": bool(show_past_events),
            "start": normalize_start_date(start_date),
            "dedup": bool(filter_duplicates),
            "filters": patterns,
            "split": bool(split_multiday_events),
            "split_overrides": sorted(
                f"{entity_id}:{int(flag)}" for entity_id, flag in split_overrides if flag is not None
            ),
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
    )
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]
    return f"{CACHE_KEY_PREFIX}{instance_id}-{digest}-v{CACHE_VERSION}"


def fingerprint_for_config(config: AggregationConfig, instance_id: str) -> str:
    return build_fingerprint(
        instance_id,
        [entity.entity for entity in config.entities],
        config.days_to_show,
        config.show_past_events,
        config.start_date,
        config.filter_duplicates,
        [(entity.entity, entity.allowlist, entity.blocklist) for entity in config.entities],
        split_multiday_events=config.split_multiday_events,
        split_overrides=[
            (entity.entity, entity.overrides.split_multiday_events) for entity in config.entities
        ],
    )


def cache_ttl_ms(config: AggregationConfig, *, manual_reload: bool = False) -> int:
    if manual_reload and config.refresh_on_navigate:
        return MANUAL_RELOAD_CACHE_SECONDS * 1000
    return config.refresh_interval * 60 * 1000


class EventCache:
    """TTL-gated cache of processed events on top of a key-value store."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def _load(self, fingerprint: str) -> CacheRecord | None:
        raw = self._store.get(fingerprint)
        if raw is None:
            return None
        try:
            record = CacheRecord.model_validate_json(raw)
        except (ValidationError, ValueError) as exc:
            LOGGER.warning("Discarding malformed cache record '%s': %s", fingerprint, exc)
            self.evict(fingerprint)
            return None
        if record.fingerprint != fingerprint:
            LOGGER.warning("Discarding cache record stored under foreign key '%s'", fingerprint)
            self.evict(fingerprint)
            return None
        return record

    def get(self, fingerprint: str, ttl_ms: int, *, now: datetime | None = None) -> CacheRecord | None:
        reference = _normalize_datetime(now) if now is not None else _utc_now()
        try:
            record = self._load(fingerprint)
        except StorageError:
            LOGGER.exception("Cache read failed for '%s'", fingerprint)
            return None
        if record is None:
            return None

        age_ms = (reference - _normalize_datetime(record.written_at)).total_seconds() * 1000
        if age_ms >= ttl_ms:
            LOGGER.info("Cache expired and removed for '%s'", fingerprint)
            self.evict(fingerprint)
            return None
        return record

    def put(
        self,
        fingerprint: str,
        events: Sequence[ProcessedEvent],
        *,
        now: datetime | None = None,
    ) -> bool:
        record_time = _normalize_datetime(now) if now is not None else _utc_now()
        record = CacheRecord(fingerprint=fingerprint, events=list(events), written_at=record_time)
        LOGGER.info("Caching %s events under '%s'", len(record.events), fingerprint)
        try:
            self._store.set(fingerprint, record.model_dump_json().encode("utf-8"))
            return self._load(fingerprint) is not None
        except StorageError:
            LOGGER.exception("Failed to cache calendar events under '%s'", fingerprint)
            return False

    def evict(self, fingerprint: str) -> None:
        try:
            self._store.delete(fingerprint)
        except StorageError:
            LOGGER.warning("Unable to evict cache record '%s'", fingerprint)
