"""Fixtures for suite case tests."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from compose_test_harness.config_loader import default_harness_config
from compose_test_harness.http import HttpClient
from compose_test_harness.probes.port import PortProbe
from compose_test_harness.runtime.base import ContainerRuntime
from compose_test_harness.suites.runner import CaseContext


@pytest.fixture
def runtime_mock() -> Mock:
    """Create mock runtime."""
    return Mock(spec=ContainerRuntime)


@pytest.fixture
def http_mock() -> Mock:
    """Create mock HTTP client."""
    return Mock(spec=HttpClient)


@pytest.fixture
def ports_mock() -> Mock:
    """Create mock port probe."""
    return Mock(spec=PortProbe)


@pytest.fixture
def context(
    runtime_mock: Mock, http_mock: Mock, ports_mock: Mock, tmp_path: Path
) -> CaseContext:
    """Create a case context over mock collaborators."""
    return CaseContext(
        runtime=runtime_mock,
        http=http_mock,
        ports=ports_mock,
        config=default_harness_config(tmp_path),
    )
