"""
adserver — an advertisement registry run as a deterministic state machine.

The registry (ordered ads plus a cumulative view counter) is stored as one
blob in a host-supplied key/value store. This package exposes a small façade
over it:

- instantiate(storage) -> Response
    Write a fresh, empty registry.
- execute(storage, msg) -> Response
    Apply AddAd / ServeAd / DeleteAd / BatchServeAds; returns structured events.
- query(storage, msg) -> bytes
    Answer Ad / Ads / TotalViews with a JSON response.
- MemoryStorage, open_sqlite_storage
    Bundled stores for tests, embedding, and the CLI.

    from adserver import MemoryStorage, instantiate, execute, query
    from adserver.msg import AddAd, QueryAds

    store = MemoryStorage()
    instantiate(store)
    execute(store, AddAd(id="a1", image_url="img", target_url="tgt", reward_address="r"))
    query(store, QueryAds())  # b'{"ads":[{"id":"a1",...}]}'
"""

from __future__ import annotations

from .contract import execute, execute_json, instantiate, query, query_json
from .errors import (
    AdServerError,
    CounterOverflow,
    DuplicateIdentifier,
    InvalidMessage,
    NotFound,
    StateCorruptOrMissing,
    StorageWriteError,
)
from .events import Event, Response
from .storage import MemoryStorage, SQLiteStorage, Storage, open_sqlite_storage
from .version import __version__


def version() -> str:
    """Return the adserver semantic version string."""
    return __version__


__all__ = [
    "__version__",
    "version",
    "instantiate",
    "execute",
    "execute_json",
    "query",
    "query_json",
    "Event",
    "Response",
    "Storage",
    "MemoryStorage",
    "SQLiteStorage",
    "open_sqlite_storage",
    "AdServerError",
    "DuplicateIdentifier",
    "NotFound",
    "StateCorruptOrMissing",
    "StorageWriteError",
    "CounterOverflow",
    "InvalidMessage",
]
