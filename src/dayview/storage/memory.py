from __future__ import annotations

from .base import StorageError


class MemoryKeyValueStore:
    """Dictionary-backed store with an optional byte quota."""

    def __init__(self, *, max_bytes: int | None = None) -> None:
        self._values: dict[str, bytes] = {}
        self._max_bytes = max_bytes

    def _used_bytes(self, *, excluding: str | None = None) -> int:
        return sum(len(value) for key, value in self._values.items() if key != excluding)

    def get(self, key: str) -> bytes | None:
        return self._values.get(key)

    def set(self, key: str, value: bytes) -> bool:
        if self._max_bytes is not None:
            if self._used_bytes(excluding=key) + len(value) > self._max_bytes:
                raise StorageError(f"Storage quota of {self._max_bytes} bytes exceeded")
        self._values[key] = bytes(value)
        return True

    def delete(self, key: str) -> None:
        self._values.pop(key, None)
