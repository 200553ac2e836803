"""
adserver.storage — the key/value store the registry is persisted in.

The registry core treats the store as an external collaborator reached
through a narrow protocol. Two backends ship with the package:

- MemoryStorage: in-process dict, for tests and embedding.
- SQLiteStorage: single-table SQLite KV, used by the CLI so state survives
  between invocations.

Design goals
------------
- Bytes-in / bytes-out API; all inputs are copied to immutable `bytes`.
- Strict caps: empty keys are rejected, oversized values fail the write.
- Write failures of the host store surface as `StorageWriteError`; the core
  performs no retries.

Backend API
-----------
- get(key: bytes) -> Optional[bytes]
- set(key: bytes, value: bytes) -> None
- delete(key: bytes) -> None
- exists(key: bytes) -> bool
"""

from __future__ import annotations

import os
import sqlite3
import threading
from typing import Dict, Optional, Protocol, Union, runtime_checkable
from urllib.parse import urlparse

from .config import MAX_KEY_BYTES, load_config
from .errors import StorageWriteError


# ---------------------------- Backend API ---------------------------- #


@runtime_checkable
class Storage(Protocol):
    """Minimal store interface the registry is loaded from and saved to."""

    def get(self, key: bytes) -> Optional[bytes]: ...
    def set(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def exists(self, key: bytes) -> bool: ...


# --------------------------- Validation helpers --------------------------- #


def _check_key(key: bytes) -> bytes:
    if not isinstance(key, (bytes, bytearray, memoryview)):
        raise TypeError("storage key must be bytes")
    k = bytes(key)
    if len(k) == 0:
        raise ValueError("storage key must be non-empty")
    if len(k) > MAX_KEY_BYTES:
        raise ValueError(f"storage key too long (>{MAX_KEY_BYTES} bytes)")
    return k


def _check_value(key: bytes, value: bytes, max_len: int) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError("storage value must be bytes")
    v = bytes(value)
    if len(v) > max_len:
        raise StorageWriteError(
            f"storage value too large (>{max_len} bytes)",
            key=key,
            data={"len": len(v)},
        )
    return v


# ------------------------------ Memory ------------------------------ #


class MemoryStorage:
    """Thread-safe in-memory backend for local runs and tests."""

    def __init__(self, *, max_value_bytes: Optional[int] = None) -> None:
        self._store: Dict[bytes, bytes] = {}
        self._lock = threading.RLock()
        self._max = max_value_bytes or load_config().max_state_bytes

    def get(self, key: bytes) -> Optional[bytes]:
        k = _check_key(key)
        with self._lock:
            return self._store.get(k)

    def set(self, key: bytes, value: bytes) -> None:
        k = _check_key(key)
        v = _check_value(k, value, self._max)
        with self._lock:
            self._store[k] = v

    def delete(self, key: bytes) -> None:
        k = _check_key(key)
        with self._lock:
            self._store.pop(k, None)

    def exists(self, key: bytes) -> bool:
        k = _check_key(key)
        with self._lock:
            return k in self._store

    def snapshot(self) -> Dict[bytes, bytes]:
        """Copy of the raw contents (test helper)."""
        with self._lock:
            return dict(self._store)

    def __len__(self) -> int:  # pragma: no cover - trivial
        return len(self._store)


# ------------------------------ SQLite ------------------------------ #


def _migrate(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv (
            k BLOB PRIMARY KEY,
            v BLOB NOT NULL
        )
        """
    )


def _resolve_path(path: Union[str, "os.PathLike[str]"]) -> str:
    path_str = os.fspath(path)
    if path_str.startswith("sqlite://"):
        parsed = urlparse(path_str)
        path_str = parsed.path or ""
        if path_str.startswith("//"):
            path_str = "/" + path_str.lstrip("/")
    return path_str


class SQLiteStorage:
    """
    SQLite-backed KV. Table schema: kv(k BLOB PRIMARY KEY, v BLOB NOT NULL).

    Each `set`/`delete` runs in its own transaction, so saving the registry
    blob is a single atomic write from the caller's perspective.

    Use `open_sqlite_storage(path)` to construct from a path or
    `sqlite:///path` URI.
    """

    def __init__(self, conn: sqlite3.Connection, *, max_value_bytes: Optional[int] = None) -> None:
        self._conn = conn
        self._max = max_value_bytes or load_config().max_state_bytes

    def get(self, key: bytes) -> Optional[bytes]:
        k = _check_key(key)
        row = self._conn.execute("SELECT v FROM kv WHERE k = ?", (k,)).fetchone()
        if row is None:
            return None
        return bytes(row[0])

    def set(self, key: bytes, value: bytes) -> None:
        k = _check_key(key)
        v = _check_value(k, value, self._max)
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v",
                    (k, v),
                )
        except sqlite3.Error as e:
            raise StorageWriteError(f"sqlite write failed: {e}", key=k) from e

    def delete(self, key: bytes) -> None:
        k = _check_key(key)
        try:
            with self._conn:
                self._conn.execute("DELETE FROM kv WHERE k = ?", (k,))
        except sqlite3.Error as e:
            raise StorageWriteError(f"sqlite delete failed: {e}", key=k) from e

    def exists(self, key: bytes) -> bool:
        k = _check_key(key)
        row = self._conn.execute("SELECT 1 FROM kv WHERE k = ?", (k,)).fetchone()
        return row is not None

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteStorage":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_sqlite_storage(
    path: Union[str, "os.PathLike[str]"],
    *,
    max_value_bytes: Optional[int] = None,
) -> SQLiteStorage:
    """Open (creating if needed) an SQLite KV at `path`."""
    path_str = _resolve_path(path)
    if path_str != ":memory:":
        parent = os.path.dirname(os.path.abspath(path_str))
        os.makedirs(parent, exist_ok=True)
    conn = sqlite3.connect(path_str, check_same_thread=False)
    _migrate(conn)
    conn.commit()
    return SQLiteStorage(conn, max_value_bytes=max_value_bytes)


__all__ = [
    "Storage",
    "MemoryStorage",
    "SQLiteStorage",
    "open_sqlite_storage",
    "MAX_KEY_BYTES",
]
