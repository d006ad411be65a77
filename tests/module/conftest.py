"""Fixtures for module tests running real service containers."""

from collections.abc import Generator

import pytest
from testcontainers.core import testcontainers_config
from testcontainers.minio import MinioContainer
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer
from wiremock.client import (
    HttpMethods,
    Mapping,
    MappingRequest,
    MappingResponse,
    Mappings,
)
from wiremock.constants import Config
from wiremock.testing.testcontainer import WireMockContainer


@pytest.fixture(scope="session", autouse=True)
def _disable_ryuk() -> None:
    """Disable the extra cleanup instance, we use contexts to clean containers."""
    testcontainers_config.ryuk_disabled = True


@pytest.fixture(scope="session")
def postgres() -> Generator[PostgresContainer]:
    with PostgresContainer("postgres:16-alpine") as container:
        yield container


@pytest.fixture(scope="session")
def redis() -> Generator[RedisContainer]:
    with RedisContainer("redis:7-alpine") as container:
        yield container


@pytest.fixture(scope="session")
def minio() -> Generator[MinioContainer]:
    with MinioContainer() as container:
        yield container


@pytest.fixture(scope="session")
def application() -> Generator[WireMockContainer]:
    """Stand in for the application with a WireMock health endpoint."""
    with WireMockContainer(secure=False) as wm:
        Config.base_url = wm.get_url("__admin")
        Mappings.delete_all_mappings()
        Mappings.create_mapping(
            Mapping(
                request=MappingRequest(method=HttpMethods.GET, url_path="/health"),
                response=MappingResponse(
                    status=200,
                    headers={"Content-Type": "application/json"},
                    json_body={"status": "ok"},
                ),
            )
        )
        yield wm
        print(wm.get_logs())
