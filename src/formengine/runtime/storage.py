"""
Key-value storage backends.

The engine keeps two stores: a durable one (survives navigation and
reload; holds drafts, in-progress state and the pending handoff) and a
short-lived one (consumed once; holds the created-entity notice and the
form session id). Both speak the same small string-to-string interface.
Payloads are JSON; a payload that does not parse reads as absent.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from formengine.core.errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """String key-value store."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored string, or None when absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a string, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key; missing keys are ignored."""

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """List keys starting with ``prefix``, sorted."""

    def clear(self, prefix: str = "") -> int:
        """Remove every key starting with ``prefix``. Returns the count removed."""
        doomed = self.keys(prefix)
        for key in doomed:
            self.remove(key)
        return len(doomed)


class MemoryStore(KeyValueStore):
    """Process-local store; the default for tests and short-lived storage."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class JsonFileStore(KeyValueStore):
    """
    Durable store backed by a single JSON document.

    Every write rewrites the document through a temporary file and an
    atomic rename, so a crash never leaves a half-written file behind.
    A document that fails to parse is treated as empty.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable store {self._path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring store {self._path}: top level is not an object")
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
            os.replace(tmp_name, self._path)
        except OSError as e:
            raise StorageError(f"Failed to write store {self._path}: {e}") from e

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._load() if k.startswith(prefix))


class SqliteStore(KeyValueStore):
    """
    Durable store backed by a SQLite table.

    Suitable when several processes share one store. Uses a
    connection-per-call pattern; ":memory:" keeps one persistent connection.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self._db_path = str(db_path)
        self._is_memory = self._db_path == ":memory:"
        self._persistent_conn: sqlite3.Connection | None = None
        if self._is_memory:
            self._persistent_conn = self._create_connection()
        else:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        if not self._is_memory:
            conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _get_connection(self) -> sqlite3.Connection:
        if self._is_memory and self._persistent_conn:
            return self._persistent_conn
        return self._create_connection()

    def _close_connection(self, conn: sqlite3.Connection) -> None:
        if not self._is_memory:
            conn.close()

    def _init_schema(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS kv_store (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
            conn.commit()
        finally:
            self._close_connection(conn)

    def get(self, key: str) -> str | None:
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None
        finally:
            self._close_connection(conn)

    def set(self, key: str, value: str) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write key '{key}': {e}") from e
        finally:
            self._close_connection(conn)

    def remove(self, key: str) -> None:
        conn = self._get_connection()
        try:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
        finally:
            self._close_connection(conn)

    def keys(self, prefix: str = "") -> list[str]:
        conn = self._get_connection()
        try:
            rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
            return [row[0] for row in rows if row[0].startswith(prefix)]
        finally:
            self._close_connection(conn)


def open_store(path: Path) -> KeyValueStore:
    """Open a durable store by file suffix: .db/.sqlite → SqliteStore, else JsonFileStore."""
    if path.suffix.lower() in (".db", ".sqlite", ".sqlite3"):
        return SqliteStore(path)
    return JsonFileStore(path)


def read_json(store: KeyValueStore, key: str) -> Any | None:
    """Read and decode a JSON payload; corrupt payloads read as None."""
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Ignoring corrupt payload under '{key}'")
        return None


def write_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, json.dumps(value, default=str))
