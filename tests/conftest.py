from __future__ import annotations

import pytest

from dayview.domain.translations import ENGLISH
from dayview.storage import MemoryKeyValueStore

from factories import FixedClock, local


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(local(2025, 6, 10, 9, 0))


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def translations():
    return ENGLISH
