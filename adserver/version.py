"""adserver.version — installed package version, with a source-tree fallback."""

from __future__ import annotations

from importlib import metadata

# Bump when the persisted layout or event attributes change.
BASE_VERSION = "0.1.0"


def _resolve() -> str:
    try:
        return metadata.version("adserver")
    except metadata.PackageNotFoundError:
        return BASE_VERSION


__version__ = _resolve()

__all__ = ["__version__", "BASE_VERSION"]
