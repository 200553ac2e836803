"""
adserver.config — storage key, codec choice, caps, and logging defaults.

This module centralizes configuration for the ad registry. It has NO
third-party deps and is safe to import very early.

Configuration precedence:
  1) Environment variables (ADSERVER_*)
  2) Hardcoded safe defaults below

Key env vars (case-insensitive where boolean):
  - ADSERVER_STATE_KEY         (str)    default: state   (at most 64 UTF-8 bytes)
  - ADSERVER_CODEC             (str)    default: json   (json | cbor | msgpack)
  - ADSERVER_DB                (path)   default: adserver.db
  - ADSERVER_MAX_STATE_BYTES   (int)    default: 4_194_304   (4 MiB)
  - ADSERVER_LOG_LEVEL         (str)    default: INFO
  - ADSERVER_LOG_FORMAT        (str)    default: auto  (json | text)
  - ADSERVER_STRICT_SCHEMA     (bool)   default: true

Usage:
    from adserver.config import load_config
    CFG = load_config()
    if CFG.strict_schema: ...

`load_config()` is cached; tests that tweak the environment call
`load_config.cache_clear()`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

CODECS = ("json", "cbor", "msgpack")

# Longest storage key a backend accepts.
MAX_KEY_BYTES = 64

# ----------------------------- helpers ---------------------------------------


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    return val in ("1", "true", "t", "yes", "y", "on")


def _env_int(name: str, default: int, *, min_v: int, max_v: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = int(raw, 0)
    except ValueError:
        return default
    if v < min_v:
        return min_v
    if v > max_v:
        return max_v
    return v


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_choice(name: str, default: str, choices: tuple) -> str:
    val = _env_str(name, default).lower()
    return val if val in choices else default


def _env_path(name: str, default: str) -> Path:
    return Path(_env_str(name, default)).expanduser()


def _env_key(name: str, default: str) -> bytes:
    try:
        k = _env_str(name, default).encode("utf-8")
    except UnicodeEncodeError:
        return default.encode("utf-8")
    return k if len(k) <= MAX_KEY_BYTES else default.encode("utf-8")


# ------------------------------- config --------------------------------------


@dataclass(frozen=True)
class AdServerConfig:
    # Persistence
    state_key: bytes
    codec: str
    db_path: Path
    max_state_bytes: int

    # Wire
    strict_schema: bool

    # Logging
    log_level: str
    log_format: Optional[str]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "state_key": self.state_key.decode("utf-8"),
            "codec": self.codec,
            "db_path": str(self.db_path),
            "max_state_bytes": self.max_state_bytes,
            "strict_schema": self.strict_schema,
            "log_level": self.log_level,
            "log_format": self.log_format,
        }


@lru_cache(maxsize=1)
def load_config() -> AdServerConfig:
    """
    Build and cache an AdServerConfig from environment + safe defaults.
    """
    fmt = _env_str("ADSERVER_LOG_FORMAT", "").lower()
    return AdServerConfig(
        state_key=_env_key("ADSERVER_STATE_KEY", "state"),
        codec=_env_choice("ADSERVER_CODEC", "json", CODECS),
        db_path=_env_path("ADSERVER_DB", "adserver.db"),
        max_state_bytes=_env_int("ADSERVER_MAX_STATE_BYTES", 4 * 1024 * 1024, min_v=1_024, max_v=256 * 1024 * 1024),
        strict_schema=_env_bool("ADSERVER_STRICT_SCHEMA", True),
        log_level=_env_str("ADSERVER_LOG_LEVEL", "INFO").upper(),
        log_format=fmt if fmt in ("json", "text") else None,
    )


__all__ = ["AdServerConfig", "load_config", "CODECS", "MAX_KEY_BYTES"]
