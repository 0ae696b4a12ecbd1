"""Key-value stores — the only persistence primitive the canvas relies on.

The contract is deliberately small: single-key get and set of strings.
There is no delete, no compare-and-swap and no multi-key transaction,
so every multi-key update in the engine is a sequence of independent
writes.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional, Protocol


logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """String get/set store. Each call is atomic for its single key."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStore:
    """In-process store backed by a dict."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class SqliteStore:
    """Durable store backed by a single SQLite table.

    WAL mode lets readers proceed while a writer commits; each set() is
    its own transaction, so it behaves like a remote single-key store.
    """

    def __init__(self, db_path: Path | str = "placemini.db", timeout: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self._timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self.db_path, timeout=self._timeout, check_same_thread=False,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(f"PRAGMA busy_timeout={int(self._timeout * 1000)}")
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
            self._conn.commit()
            logger.debug("Opened key-value store at %s", self.db_path)
        return self._conn

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._connect().execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            conn = self._connect()
            conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
