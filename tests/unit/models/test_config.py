"""Tests for configuration models."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from compose_test_harness.models.config import (
    ComposeConfig,
    HarnessConfig,
    ServiceDescriptor,
)
from compose_test_harness.testing.factories import ServiceDescriptorFactory


def test_rejects_duplicate_service_names() -> None:
    """Service names must be unique."""
    with pytest.raises(ValidationError) as exc_info:
        HarnessConfig(
            services=[
                ServiceDescriptorFactory.build(name="Redis"),
                ServiceDescriptorFactory.build(name="Redis"),
            ]
        )

    assert "Duplicate service names: Redis" in str(exc_info.value)


def test_ordered_services_follow_dependency_order() -> None:
    """Services are ordered by kind regardless of declaration order."""
    config = HarnessConfig(
        services=[
            ServiceDescriptorFactory.build(name="proxy", kind="reverse-proxy"),
            ServiceDescriptorFactory.build(name="app", kind="application"),
            ServiceDescriptorFactory.build(name="db", kind="database"),
            ServiceDescriptorFactory.build(name="s3", kind="object-store"),
            ServiceDescriptorFactory.build(name="cache", kind="cache"),
        ]
    )

    names = [service.name for service in config.ordered_services()]

    assert names == ["db", "cache", "s3", "app", "proxy"]


def test_rejects_container_query_timeout_of_one_second() -> None:
    """Container queries must stay under one second."""
    with pytest.raises(ValidationError):
        HarnessConfig.model_validate(
            {"services": [], "probes": {"container_query_timeout": 1.0}}
        )


def test_dev_mode_adds_overlay_compose_file() -> None:
    """Dev mode layers the dev compose file over the base one."""
    compose = ComposeConfig(project_dir=Path("/srv/app"))

    assert compose.compose_files("prod") == [Path("/srv/app/docker-compose.yml")]
    assert compose.compose_files("dev") == [
        Path("/srv/app/docker-compose.yml"),
        Path("/srv/app/docker-compose.dev.yml"),
    ]


def test_base_url() -> None:
    """Base URL combines host and port."""
    service = ServiceDescriptorFactory.build(host="127.0.0.1", port=9000)

    assert service.base_url == "http://127.0.0.1:9000"


class TestKindDefaults:
    @pytest.mark.parametrize(
        ("kind", "command", "reply", "path"),
        [
            ("database", ("pg_isready", "-U", "postgres"), None, None),
            ("cache", ("redis-cli", "ping"), "PONG", None),
            ("object-store", (), None, "/minio/health/live"),
            ("application", (), None, "/health"),
            ("reverse-proxy", (), None, None),
        ],
    )
    def test_unset_probe_settings_take_kind_defaults(
        self,
        kind: str,
        command: tuple[str, ...],
        reply: str | None,
        path: str | None,
    ) -> None:
        """A service declared with only name, kind and port is fully probed."""
        service = ServiceDescriptor.model_validate(
            {"name": "svc", "container": "svc", "kind": kind, "port": 8000}
        )

        assert tuple(service.readiness_command) == command
        assert service.expected_reply == reply
        assert service.health_path == path

    def test_explicit_settings_win(self) -> None:
        service = ServiceDescriptor(
            name="Postgres",
            container="pg",
            kind="database",
            port=5432,
            readiness_command=("pg_isready", "-U", "app"),
        )

        assert tuple(service.readiness_command) == ("pg_isready", "-U", "app")

    @pytest.mark.parametrize("kind", ["database", "cache"])
    def test_empty_command_is_rejected(self, kind: str) -> None:
        """Command-probed kinds cannot be configured without a command."""
        with pytest.raises(ValidationError, match="needs a readiness_command"):
            ServiceDescriptor(
                name="svc", container="svc", kind=kind, port=1, readiness_command=()
            )
