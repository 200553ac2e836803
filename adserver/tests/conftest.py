from __future__ import annotations

from typing import Iterator

import pytest

from adserver import contract
from adserver.config import load_config
from adserver.storage import MemoryStorage
from adserver.tests import CountingStorage

_ENV_VARS = (
    "ADSERVER_STATE_KEY",
    "ADSERVER_CODEC",
    "ADSERVER_DB",
    "ADSERVER_MAX_STATE_BYTES",
    "ADSERVER_LOG_LEVEL",
    "ADSERVER_LOG_FORMAT",
    "ADSERVER_STRICT_SCHEMA",
)


@pytest.fixture(autouse=True)
def _clean_config(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Each test starts from default configuration."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    load_config.cache_clear()
    yield
    load_config.cache_clear()


@pytest.fixture
def store() -> MemoryStorage:
    """An initialized, empty registry."""
    s = MemoryStorage()
    contract.instantiate(s)
    return s


@pytest.fixture
def counting_store() -> CountingStorage:
    """An initialized registry whose get/set counters start at zero."""
    s = CountingStorage()
    contract.instantiate(s)
    s.reset_counts()
    return s
