from __future__ import annotations

from typing import Protocol


class StorageError(RuntimeError):
    """Raised when the key-value store cannot read or persist a value."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None:
        """Return the stored bytes for ``key`` or ``None`` when absent."""

    def set(self, key: str, value: bytes) -> bool:
        """Persist ``value`` under ``key``, replacing any previous value."""

    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
