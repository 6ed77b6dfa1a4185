from .base import KeyValueStore, StorageError
from .cache import (
    EventCache,
    build_fingerprint,
    cache_ttl_ms,
    fingerprint_for_config,
    normalize_start_date,
)
from .db import SqliteKeyValueStore, initialize_database
from .forecasts import load_forecasts, save_forecasts
from .memory import MemoryKeyValueStore

__all__ = [
    "EventCache",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "StorageError",
    "build_fingerprint",
    "cache_ttl_ms",
    "fingerprint_for_config",
    "initialize_database",
    "load_forecasts",
    "normalize_start_date",
    "save_forecasts",
]
