"""
codec.py — stable registry blob ↔ bytes encoding.

Design goals
------------
- Round-trip stable across platforms and Python versions.
- No pickles or dynamic code; only plain maps, lists, strings and integers.
- JSON by default so the stored blob stays readable and matches the JSON
  layout other hosts of this registry write.
- Compact binary formats available behind a self-describing header.

Formats
-------
JSON (default): compact UTF-8 JSON, no header, key order as built by the
caller. Unframed blobs are always read as JSON.

CBOR (`cbor2`, canonical ordering) and msgpack (`msgspec`) are framed:

Header (6 bytes):
  0..3 : ASCII magic b"ADST"
  4    : version byte (0x01)
  5    : format byte  (0x01 = CBOR, 0x02 = MSGPACK)
"""
from __future__ import annotations

import json
from typing import Any, Optional, Tuple

import cbor2
import msgspec

MAGIC = b"ADST"
VERSION = 1
FMT_JSON = 0x00
FMT_CBOR = 0x01
FMT_MSGPACK = 0x02

FORMATS = {"json": FMT_JSON, "cbor": FMT_CBOR, "msgpack": FMT_MSGPACK}

_MSGPACK_ENC = msgspec.msgpack.Encoder()
_MSGPACK_DEC = msgspec.msgpack.Decoder()


class CodecError(ValueError):
    pass


# -----------------------------------------------------------------------------
# Format wrappers
# -----------------------------------------------------------------------------


def json_dumps(obj: Any) -> bytes:
    """Deterministic compact JSON (insertion-ordered keys, no whitespace)."""
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _dumps_payload(obj: Any, fmt: int) -> bytes:
    try:
        if fmt == FMT_JSON:
            return json_dumps(obj)
        if fmt == FMT_CBOR:
            # canonical=True enforces deterministic map ordering and integer encodings
            return cbor2.dumps(obj, canonical=True)
        if fmt == FMT_MSGPACK:
            return _MSGPACK_ENC.encode(obj)
    except (ValueError, TypeError, cbor2.CBOREncodeError, msgspec.EncodeError) as e:
        raise CodecError(f"cannot encode payload: {e}") from e
    raise CodecError(f"Unknown format byte: {fmt!r}")


def _loads_payload(data: bytes, fmt: int) -> Any:
    try:
        if fmt == FMT_JSON:
            return json.loads(data.decode("utf-8"))
        if fmt == FMT_CBOR:
            return cbor2.loads(data)
        if fmt == FMT_MSGPACK:
            return _MSGPACK_DEC.decode(data)
    except (ValueError, UnicodeDecodeError, cbor2.CBORDecodeError, msgspec.DecodeError) as e:
        raise CodecError(f"malformed payload: {e}") from e
    raise CodecError(f"Unknown format byte: {fmt!r}")


def _unwrap_header(blob: bytes) -> Tuple[int, bytes]:
    """Return (fmt, payload). Blobs without the magic are JSON."""
    if len(blob) >= 6 and blob[:4] == MAGIC:
        ver = blob[4]
        fmt = blob[5]
        if ver != VERSION:
            raise CodecError(f"Unsupported blob version: {ver} (expected {VERSION})")
        if fmt not in (FMT_CBOR, FMT_MSGPACK):
            raise CodecError(f"Unsupported framed format: {fmt}")
        return fmt, blob[6:]
    return FMT_JSON, blob


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------


def format_id(name: str) -> int:
    try:
        return FORMATS[name.lower()]
    except KeyError:
        raise CodecError(f"unknown codec {name!r} (expected one of {sorted(FORMATS)})") from None


def dumps(obj: Any, fmt: Optional[str] = None) -> bytes:
    """Encode `obj` with codec `fmt` ("json" when None)."""
    fid = format_id(fmt or "json")
    payload = _dumps_payload(obj, fid)
    if fid == FMT_JSON:
        return payload
    return MAGIC + bytes((VERSION, fid)) + payload


def loads(blob: bytes) -> Any:
    """Decode a blob produced by `dumps` in any format."""
    fid, payload = _unwrap_header(bytes(blob))
    return _loads_payload(payload, fid)


def detect_format(blob: bytes) -> str:
    fid, _ = _unwrap_header(bytes(blob))
    for name, v in FORMATS.items():
        if v == fid:
            return name
    raise CodecError(f"Unknown format byte: {fid!r}")  # pragma: no cover


__all__ = [
    "CodecError",
    "MAGIC",
    "VERSION",
    "FORMATS",
    "dumps",
    "loads",
    "json_dumps",
    "detect_format",
    "format_id",
]
