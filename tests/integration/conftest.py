"""Fixtures for integration tests."""

from collections.abc import AsyncGenerator, Generator

import pytest
from aioresponses import aioresponses as aioresponses_cls

from compose_test_harness.http import HttpClient


@pytest.fixture
def aioresponses() -> Generator[aioresponses_cls]:
    """Intercept every aiohttp request made during the test."""
    with aioresponses_cls() as mock:
        yield mock


@pytest.fixture
async def http(aioresponses: aioresponses_cls) -> AsyncGenerator[HttpClient, None]:
    """Create client with managed session."""
    async with HttpClient.create(default_timeout=1.0) as client:
        yield client
