"""
adserver.state — the registry aggregate and its persistence.

The whole registry (ordered ads plus the cumulative view counter) lives in a
single blob under one storage key. Every command loads it in full, mutates the
in-memory copy, and writes it back in full; nothing is cached across calls.

Invariants held by `State`:
  * `ads` keeps insertion order and never contains two ads with the same id.
  * `views` and `total_views` are unsigned 64-bit and only ever grow.
  * `total_views` counts every serve, including serves of ads since deleted.

The mutation helpers (`add_ad`, `serve`, `remove`) are pure in-memory
transitions; they raise before touching anything, so a rejected command leaves
the State exactly as it was.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from . import codec
from .config import load_config
from .errors import (
    CounterOverflow,
    DuplicateIdentifier,
    NotFound,
    StateCorruptOrMissing,
    StorageWriteError,
)
from .storage import Storage

U64_MAX = (1 << 64) - 1


def _u64(obj: Mapping[str, Any], name: str) -> int:
    v = obj.get(name)
    if isinstance(v, bool) or not isinstance(v, int):
        raise StateCorruptOrMissing(f"field {name!r} must be an integer")
    if v < 0 or v > U64_MAX:
        raise StateCorruptOrMissing(f"field {name!r} out of u64 range")
    return v


def _str(obj: Mapping[str, Any], name: str) -> str:
    v = obj.get(name)
    if not isinstance(v, str):
        raise StateCorruptOrMissing(f"field {name!r} must be a string")
    try:
        v.encode("utf-8")
    except UnicodeEncodeError:
        raise StateCorruptOrMissing(f"field {name!r} is not valid UTF-8 text") from None
    return v


@dataclass
class Ad:
    """A single advertisement entry in state."""

    id: str
    image_url: str
    target_url: str
    views: int = 0
    reward_address: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "image_url": self.image_url,
            "target_url": self.target_url,
            "views": self.views,
            "reward_address": self.reward_address,
        }

    @classmethod
    def from_dict(cls, obj: Any) -> "Ad":
        if not isinstance(obj, Mapping):
            raise StateCorruptOrMissing("ad entry must be a map")
        return cls(
            id=_str(obj, "id"),
            image_url=_str(obj, "image_url"),
            target_url=_str(obj, "target_url"),
            views=_u64(obj, "views"),
            reward_address=_str(obj, "reward_address"),
        )


@dataclass
class State:
    """The top-level registry state."""

    ads: List[Ad] = field(default_factory=list)
    total_views: int = 0
    plt_address: str = ""

    # ------------------------------ lookups ------------------------------

    def index_of(self, ad_id: str) -> Optional[int]:
        for i, ad in enumerate(self.ads):
            if ad.id == ad_id:
                return i
        return None

    def find(self, ad_id: str) -> Optional[Ad]:
        i = self.index_of(ad_id)
        return None if i is None else self.ads[i]

    # ----------------------------- transitions ----------------------------

    def add_ad(self, ad: Ad) -> Ad:
        """Append `ad`; DuplicateIdentifier if its id is taken."""
        if self.index_of(ad.id) is not None:
            raise DuplicateIdentifier(ad.id)
        self.ads.append(ad)
        return ad

    def serve(self, ad_id: str) -> Optional[Ad]:
        """
        Count one impression of `ad_id`. Returns the served ad, or None when no
        such ad exists (callers decide whether that is an error).
        """
        ad = self.find(ad_id)
        if ad is None:
            return None
        if ad.views >= U64_MAX:
            raise CounterOverflow("views", ad_id=ad_id)
        if self.total_views >= U64_MAX:
            raise CounterOverflow("total_views", ad_id=ad_id)
        ad.views += 1
        self.total_views += 1
        return ad

    def remove(self, ad_id: str) -> Ad:
        """Drop `ad_id` keeping the order of the rest. total_views is untouched."""
        i = self.index_of(ad_id)
        if i is None:
            raise NotFound(ad_id, op="delete_ad", message="Cannot delete: Ad not found")
        return self.ads.pop(i)

    # ---------------------------- (de)serialize ---------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ads": [ad.to_dict() for ad in self.ads],
            "total_views": self.total_views,
            "plt_address": self.plt_address,
        }

    @classmethod
    def from_dict(cls, obj: Any) -> "State":
        if not isinstance(obj, Mapping):
            raise StateCorruptOrMissing("registry state must be a map")
        raw_ads = obj.get("ads")
        if not isinstance(raw_ads, list):
            raise StateCorruptOrMissing("field 'ads' must be a list")
        ads = [Ad.from_dict(a) for a in raw_ads]
        seen = set()
        for ad in ads:
            if ad.id in seen:
                raise StateCorruptOrMissing("duplicate ad id in stored state", data={"ad_id": ad.id})
            seen.add(ad.id)
        return cls(
            ads=ads,
            total_views=_u64(obj, "total_views"),
            plt_address=_str(obj, "plt_address"),
        )


def empty_state() -> State:
    return State(ads=[], total_views=0, plt_address="")


def encode_state(state: State, fmt: Optional[str] = None) -> bytes:
    """Serialize `state` with codec `fmt` (configured codec when None)."""
    return codec.dumps(state.to_dict(), fmt or load_config().codec)


def decode_state(blob: bytes) -> State:
    try:
        obj = codec.loads(blob)
    except codec.CodecError as e:
        raise StateCorruptOrMissing(str(e)) from e
    return State.from_dict(obj)


def state_key() -> bytes:
    return load_config().state_key


def load_state(storage: Storage, *, key: Optional[bytes] = None) -> State:
    """
    Load the registry. StateCorruptOrMissing if it was never initialized or
    the stored bytes do not have the expected shape.
    """
    k = key or state_key()
    try:
        blob = storage.get(k)
    except (OSError, RuntimeError, ValueError) as e:
        raise StateCorruptOrMissing(f"cannot read registry: {e}", key=k) from e
    if blob is None:
        raise StateCorruptOrMissing("registry not initialized", key=k)
    try:
        return decode_state(blob)
    except StateCorruptOrMissing as e:
        d = dict(e.data or {})
        d.setdefault("key", k.decode("utf-8", "replace"))
        raise StateCorruptOrMissing(e.message, data=d) from e


def save_state(storage: Storage, state: State, *, key: Optional[bytes] = None, fmt: Optional[str] = None) -> None:
    """Overwrite the registry blob with `state` in one write."""
    k = key or state_key()
    try:
        blob = encode_state(state, fmt)
    except codec.CodecError as e:
        raise StorageWriteError(f"cannot encode registry state: {e}", key=k) from e
    try:
        storage.set(k, blob)
    except StorageWriteError:
        raise
    except (OSError, RuntimeError, ValueError) as e:
        raise StorageWriteError(str(e), key=k) from e


__all__ = [
    "Ad",
    "State",
    "U64_MAX",
    "empty_state",
    "encode_state",
    "decode_state",
    "state_key",
    "load_state",
    "save_state",
]
