"""Command-line host for the ad registry (`adserver` console script)."""

from .main import app, main

__all__ = ["app", "main"]
