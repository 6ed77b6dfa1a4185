from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .base import StorageError

KV_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_entries (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def _prepare_db_path(db_path: Path) -> Path:
    normalized = Path(db_path)
    normalized.parent.mkdir(parents=True, exist_ok=True)
    return normalized


def connect(db_path: Path) -> sqlite3.Connection:
    normalized = _prepare_db_path(db_path)
    connection = sqlite3.connect(normalized)
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA journal_mode = WAL;")
    connection.execute("PRAGMA synchronous = NORMAL;")
    return connection


def ensure_schema(connection: sqlite3.Connection) -> None:
    connection.executescript(KV_TABLE_SCHEMA)
    connection.commit()


@contextmanager
def open_db(db_path: Path) -> Iterator[sqlite3.Connection]:
    try:
        connection = connect(db_path)
    except (sqlite3.Error, OSError) as exc:
        raise StorageError(f"Unable to open key-value database: {db_path}") from exc
    try:
        ensure_schema(connection)
        yield connection
    except sqlite3.Error as exc:
        raise StorageError(f"Key-value database operation failed: {db_path}") from exc
    finally:
        connection.close()


def initialize_database(db_path: Path) -> None:
    with open_db(db_path):
        return


class SqliteKeyValueStore:
    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)

    def get(self, key: str) -> bytes | None:
        with open_db(self._db_path) as connection:
            row = connection.execute("SELECT value FROM kv_entries WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return bytes(row["value"])

    def set(self, key: str, value: bytes) -> bool:
        updated_at = datetime.now(timezone.utc).isoformat()
        with open_db(self._db_path) as connection:
            connection.execute(
                """
                INSERT INTO kv_entries (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    updated_at=excluded.updated_at
                """,
                (key, sqlite3.Binary(value), updated_at),
            )
            connection.commit()
        return True

    def delete(self, key: str) -> None:
        with open_db(self._db_path) as connection:
            connection.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
            connection.commit()
