"""Persistent key/value settings store."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Optional

from hotcode.errors import StorageError

_SCHEMA_VERSION = 1


class SettingsStore:
    """SQLite-backed store for opaque string settings."""

    def __init__(self, path: Path, now_fn=None) -> None:
        self.path = path
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"Could not open settings store {path}: {exc}") from exc
        self._lock = Lock()
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))
        self._logger = logging.getLogger(__name__)
        try:
            self._init_schema()
        except Exception:
            self._conn.close()
            raise

    def _now_iso(self) -> str:
        value = self._now_fn()
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

    def _init_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_metadata (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY CHECK(length(key) > 0),
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        row = self._conn.execute(
            "SELECT value FROM schema_metadata WHERE key = 'schema_version'"
        ).fetchone()
        if row is None:
            self._conn.execute(
                "INSERT INTO schema_metadata (key, value) VALUES ('schema_version', ?)",
                (str(_SCHEMA_VERSION),),
            )
        elif int(row[0]) > _SCHEMA_VERSION:
            raise ValueError(
                f"Settings schema {row[0]} > supported {_SCHEMA_VERSION}. "
                "Please upgrade hotcode."
            )
        self._conn.commit()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM settings WHERE key = ?",
                (key,),
            ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: Optional[str]) -> None:
        """Store a value; None deletes the key."""
        if value is None:
            self.delete(key)
            return
        now = self._now_iso()
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, now),
            )
            self._conn.commit()

    def delete(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM settings WHERE key = ?", (key,))
            self._conn.commit()
        self._logger.debug("Deleted setting %s", key)

    def close(self) -> None:
        with self._lock:
            self._conn.close()
