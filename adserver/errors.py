"""
adserver.errors — typed failures for the ad registry.

Handlers communicate failures via *typed exceptions*; the host layer (CLI,
embedding application) converts them into structured error payloads. These
classes are pure-Python and dependency-free so that low-level modules
(storage, codec, state) can raise them without import cycles.

Hierarchy
---------
AdServerError (base)
 ├─ DuplicateIdentifier   : AddAd with an id already present
 ├─ NotFound              : Serve/Delete/GetAd referencing an unknown id
 ├─ StateCorruptOrMissing : registry never initialized, or stored bytes malformed
 ├─ StorageWriteError     : the host store rejected a write
 ├─ CounterOverflow       : a u64 view counter would wrap
 └─ InvalidMessage        : inbound message does not match the wire schema

Notes
-----
* `DuplicateIdentifier` and `NotFound` are *semantic* rejections of a command;
  they are raised before any mutation is saved.
* `StateCorruptOrMissing` and `StorageWriteError` describe the store, not the
  command, and are never retried here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class AdServerError(Exception):
    """
    Base registry error.

    Attributes:
        message: Human-readable explanation.
        code:    Stable machine code string (e.g., 'NOT_FOUND').
        data:    Optional structured details (kept JSON-serializable).
    """
    message: str = "adserver error"
    code: str = "ADSERVER_ERROR"
    data: Optional[Dict[str, Any]] = field(default=None)

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.data:
            return f"{self.code}: {self.message} ({self.data})"
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict for CLI output and logs."""
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


class DuplicateIdentifier(AdServerError):
    """An ad with the given id is already registered."""

    def __init__(self, ad_id: str, message: str = "Ad with this ID already exists"):
        super().__init__(message=message, code="DUPLICATE_ID", data={"ad_id": ad_id})


class NotFound(AdServerError):
    """
    No ad with the given id exists.

    `op` records which operation looked it up (serve_ad, delete_ad, ad).
    """

    def __init__(self, ad_id: str, *, op: Optional[str] = None, message: str = "Ad not found"):
        d: Dict[str, Any] = {"ad_id": ad_id}
        if op is not None:
            d["op"] = op
        super().__init__(message=message, code="NOT_FOUND", data=d)


class StateCorruptOrMissing(AdServerError):
    """
    The registry blob is absent (never initialized) or does not decode into
    the expected shape.
    """

    def __init__(
        self,
        message: str = "registry state missing or corrupt",
        *,
        key: Optional[bytes] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        d: Dict[str, Any] = {}
        if data:
            d.update(data)
        if key is not None:
            d.setdefault("key", key.decode("utf-8", "replace"))
        super().__init__(message=message, code="STATE_CORRUPT", data=d or None)


class StorageWriteError(AdServerError):
    """The host store failed to persist a value."""

    def __init__(
        self,
        message: str = "storage write failed",
        *,
        key: Optional[bytes] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        d: Dict[str, Any] = {}
        if data:
            d.update(data)
        if key is not None:
            d.setdefault("key", key.decode("utf-8", "replace"))
        super().__init__(message=message, code="STORAGE_WRITE", data=d or None)


class CounterOverflow(AdServerError):
    """A view counter increment would exceed the unsigned 64-bit range."""

    def __init__(self, counter: str, *, ad_id: Optional[str] = None):
        d: Dict[str, Any] = {"counter": counter}
        if ad_id is not None:
            d["ad_id"] = ad_id
        super().__init__(message="counter overflow", code="COUNTER_OVERFLOW", data=d)


class InvalidMessage(AdServerError):
    """An inbound init/execute/query message could not be parsed."""

    def __init__(self, message: str = "invalid message", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_MESSAGE", data=data)


# -------- helper utilities ---------------------------------------------------


def error_to_result_fields(err: AdServerError) -> Dict[str, Any]:
    """
    Map an AdServerError to the host-facing failure envelope:

        {"ok": False, "error": {code, message, data?}}
    """
    return {"ok": False, "error": err.to_dict()}


__all__ = [
    "AdServerError",
    "DuplicateIdentifier",
    "NotFound",
    "StateCorruptOrMissing",
    "StorageWriteError",
    "CounterOverflow",
    "InvalidMessage",
    "error_to_result_fields",
]
