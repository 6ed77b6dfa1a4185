from __future__ import annotations

import logging
from datetime import timedelta, timezone

import pytest

from dayview.domain.models import AggregationConfig
from dayview.events.processing import process_events
from dayview.storage import (
    EventCache,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
    StorageError,
    build_fingerprint,
    cache_ttl_ms,
    fingerprint_for_config,
    initialize_database,
)
from dayview.storage.cache import CACHE_KEY_PREFIX, MANUAL_RELOAD_CACHE_SECONDS

from factories import BERLIN, local, timed_event

WRITTEN_AT = local(2025, 6, 10, 9, 0)


@pytest.fixture
def events():
    config = AggregationConfig(entities=["calendar.a"])
    raw = [timed_event("calendar.a", "Standup", local(2025, 6, 10, 10), local(2025, 6, 10, 10, 15))]
    return process_events(raw, config, BERLIN)


class TestFingerprint:
    def test_key_layout(self):
        key = fingerprint_for_config(AggregationConfig(entities=["calendar.a"]), "kitchen")

        assert key.startswith(f"{CACHE_KEY_PREFIX}kitchen-")
        assert key.endswith("-v1")

    def test_equivalent_start_dates_share_a_key(self):
        first = build_fingerprint("default", ["calendar.a"], 3, False, "2025-06-11T10:00:00", False)
        second = build_fingerprint("default", ["calendar.a"], 3, False, "2025-06-11", False)

        assert first == second

    def test_entity_order_does_not_matter(self):
        first = build_fingerprint("default", ["calendar.a", "calendar.b"], 3, False, None, False)
        second = build_fingerprint("default", ["calendar.b", "calendar.a"], 3, False, None, False)

        assert first == second

    def test_invalid_day_counts_share_the_default_key(self):
        first = build_fingerprint("default", ["calendar.a"], 0, False, None, False)
        second = build_fingerprint("default", ["calendar.a"], 3, False, None, False)

        assert first == second

    @pytest.mark.parametrize(
        "changes",
        [
            {"days_to_show": 5},
            {"show_past_events": True},
            {"start_date": "+1"},
            {"filter_duplicates": True},
            {"entities": [{"entity": "calendar.a", "blocklist": "lunch"}]},
            {"entities": [{"entity": "calendar.a", "allowlist": "lunch"}]},
            {"entities": ["calendar.a", "calendar.b"]},
            {"split_multiday_events": True},
            {"entities": [{"entity": "calendar.a", "split_multiday_events": True}]},
        ],
    )
    def test_output_affecting_inputs_change_the_key(self, changes):
        base = {"entities": ["calendar.a"]}
        original = fingerprint_for_config(AggregationConfig(**base), "default")
        changed = fingerprint_for_config(AggregationConfig(**{**base, **changes}), "default")

        assert original != changed

    def test_instances_do_not_share_keys(self):
        config = AggregationConfig(entities=["calendar.a"])

        assert fingerprint_for_config(config, "hall") != fingerprint_for_config(config, "kitchen")


class TestTtl:
    def test_refresh_interval_in_milliseconds(self):
        assert cache_ttl_ms(AggregationConfig(refresh_interval=15)) == 15 * 60 * 1000

    def test_manual_reload_uses_short_ttl_when_refresh_on_navigate(self):
        config = AggregationConfig(refresh_on_navigate=True)

        assert cache_ttl_ms(config, manual_reload=True) == MANUAL_RELOAD_CACHE_SECONDS * 1000
        assert cache_ttl_ms(config, manual_reload=False) == 30 * 60 * 1000

    def test_manual_reload_is_ignored_without_refresh_on_navigate(self):
        assert cache_ttl_ms(AggregationConfig(), manual_reload=True) == 30 * 60 * 1000


class TestEventCache:
    def test_fresh_record_is_returned(self, store, events):
        cache = EventCache(store)
        assert cache.put("key", events, now=WRITTEN_AT)

        record = cache.get("key", 60_000, now=WRITTEN_AT + timedelta(seconds=59))

        assert record is not None
        assert [event.model_dump() for event in record.events] == [event.model_dump() for event in events]

    def test_expired_record_is_evicted(self, store, events):
        cache = EventCache(store)
        cache.put("key", events, now=WRITTEN_AT)

        assert cache.get("key", 60_000, now=WRITTEN_AT + timedelta(seconds=60)) is None
        assert store.get("key") is None

    def test_malformed_record_is_evicted(self, store, caplog):
        store.set("key", b"{not json")

        with caplog.at_level(logging.WARNING):
            assert EventCache(store).get("key", 60_000, now=WRITTEN_AT) is None

        assert store.get("key") is None
        assert "malformed" in caplog.text

    def test_record_under_foreign_key_is_evicted(self, store, events):
        cache = EventCache(store)
        cache.put("other", events, now=WRITTEN_AT)
        store.set("key", store.get("other"))

        assert cache.get("key", 60_000, now=WRITTEN_AT) is None
        assert store.get("key") is None

    def test_write_failure_is_reported(self, events, caplog):
        cache = EventCache(MemoryKeyValueStore(max_bytes=16))

        with caplog.at_level(logging.ERROR):
            assert cache.put("key", events, now=WRITTEN_AT) is False

        assert "Failed to cache" in caplog.text

    def test_read_failure_counts_as_miss(self, events):
        class BrokenStore(MemoryKeyValueStore):
            def get(self, key):
                raise StorageError("disk gone")

        assert EventCache(BrokenStore()).get("key", 60_000, now=WRITTEN_AT) is None

    def test_naive_clock_values_are_read_as_utc(self, store, events):
        cache = EventCache(store)
        cache.put("key", events, now=WRITTEN_AT)

        naive_now = WRITTEN_AT.astimezone(timezone.utc).replace(tzinfo=None)

        assert cache.get("key", 60_000, now=naive_now + timedelta(seconds=30)) is not None


class TestSqliteStore:
    def test_round_trip(self, tmp_path):
        db_path = tmp_path / "nested" / "dayview.db"
        initialize_database(db_path)
        kv_store = SqliteKeyValueStore(db_path)

        assert db_path.exists()
        assert kv_store.get("missing") is None

        kv_store.set("b", b"one")
        kv_store.set("a", b"two")
        kv_store.set("b", b"three")

        assert kv_store.get("b") == b"three"
        assert kv_store.get("a") == b"two"

        kv_store.delete("a")
        assert kv_store.get("a") is None
        assert kv_store.get("b") == b"three"

    def test_event_cache_on_sqlite(self, tmp_path, events):
        cache = EventCache(SqliteKeyValueStore(tmp_path / "dayview.db"))

        assert cache.put("key", events, now=WRITTEN_AT)
        assert cache.get("key", 60_000, now=WRITTEN_AT) is not None

    def test_unopenable_database_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")

        with pytest.raises(StorageError):
            SqliteKeyValueStore(blocker / "dayview.db").get("key")
