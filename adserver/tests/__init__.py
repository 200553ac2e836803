"""
adserver.tests helpers

- Sample ad fields shared across modules: AD1, AD2
- add_ad(store, fields): AddAd from one of those dicts
- CountingStorage: a MemoryStorage that records get/set traffic
"""

from __future__ import annotations

from typing import Dict, List, Optional

from adserver import contract
from adserver.events import Response
from adserver.storage import MemoryStorage

AD1: Dict[str, str] = {
    "id": "ad1",
    "image_url": "https://example.com/image1",
    "target_url": "https://example.com/landing",
    "reward_address": "reward1",
}

AD2: Dict[str, str] = {
    "id": "ad2",
    "image_url": "https://example.com/image2",
    "target_url": "https://example.com/landing2",
    "reward_address": "reward2",
}


def add_ad(store, fields: Dict[str, str]) -> Response:
    return contract.add_ad(
        store,
        fields["id"],
        fields["image_url"],
        fields["target_url"],
        fields["reward_address"],
    )


class CountingStorage(MemoryStorage):
    """MemoryStorage that counts round-trips to the store."""

    def __init__(self) -> None:
        super().__init__()
        self.gets: List[bytes] = []
        self.sets: List[bytes] = []

    def get(self, key: bytes) -> Optional[bytes]:
        self.gets.append(bytes(key))
        return super().get(key)

    def set(self, key: bytes, value: bytes) -> None:
        self.sets.append(bytes(key))
        super().set(key, value)

    def reset_counts(self) -> None:
        self.gets.clear()
        self.sets.clear()
