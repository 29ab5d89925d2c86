"""Pytest configuration and shared fixtures."""

import pytest

from helpers import MemoryChannel


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def memory_channel():
    return MemoryChannel()
