"""SQLite-backed key-value store holding the serialized vault and settings."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock

DATA_KEY = "mindvault_data"
CONFIG_KEY = "mindvault_config"


class KeyValueStore:
    """Device-local byte store keyed by fixed names."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                updated_at TEXT
            )
            """
        )
        self._conn.commit()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            cur = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cur.fetchone()
        if row is None:
            return None
        value = row["value"]
        if isinstance(value, str):
            return value.encode("utf-8")
        return bytes(value)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv_store(key, value, updated_at) VALUES (?, ?, datetime('now'))",
                (key, sqlite3.Binary(value)),
            )
            self._conn.commit()

    def delete(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            self._conn.commit()

    def keys(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [row["key"] for row in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


__all__ = ["CONFIG_KEY", "DATA_KEY", "KeyValueStore"]
