"""Load harness configuration from YAML files."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from compose_test_harness.errors import ConfigurationError
from compose_test_harness.models.config import (
    ComposeConfig,
    HarnessConfig,
    ServiceDescriptor,
)

DEFAULT_SERVICES: tuple[ServiceDescriptor, ...] = (
    ServiceDescriptor(
        name="PostgreSQL",
        container="happy-server-postgres",
        kind="database",
        port=5432,
        readiness_command=("pg_isready", "-U", "postgres"),
    ),
    ServiceDescriptor(
        name="Redis",
        container="happy-server-redis",
        kind="cache",
        port=6379,
        readiness_command=("redis-cli", "ping"),
        expected_reply="PONG",
    ),
    ServiceDescriptor(
        name="MinIO",
        container="happy-server-minio",
        kind="object-store",
        port=9000,
        health_path="/minio/health/live",
    ),
    ServiceDescriptor(
        name="Happy Server",
        container="happy-server-app",
        kind="application",
        port=3000,
        poll_interval=3.0,
        timeout=120.0,
        health_path="/health",
        log_lines=50,
    ),
    ServiceDescriptor(
        name="Nginx",
        container="happy-server-nginx",
        kind="reverse-proxy",
        port=80,
        timeout=30.0,
        mandatory=False,
    ),
)


def default_harness_config(project_dir: Path = Path(".")) -> HarnessConfig:
    """Build the default configuration for the happy-server stack."""
    return HarnessConfig(
        services=DEFAULT_SERVICES,
        compose=ComposeConfig(project_dir=project_dir),
    )


def load_harness_config(
    path: Path, project_dir: Path | None = None
) -> HarnessConfig:
    """Load and validate a harness.yaml file.

    Missing sections fall back to the defaults; a missing ``services`` list
    uses the default happy-server topology.

    Args:
        path: Path to the YAML configuration
        project_dir: Overrides ``compose.project_dir`` when given

    Returns:
        The validated configuration

    Raises:
        ConfigurationError: If the file is missing, not valid YAML or does not
            match the configuration schema

    """
    try:
        content = path.read_text()
    except FileNotFoundError as e:
        raise ConfigurationError(f"Harness configuration not found: {path}") from e

    try:
        data: Any = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Harness configuration must be a mapping: {path}")

    data.setdefault("services", [s.model_dump() for s in DEFAULT_SERVICES])

    try:
        config = HarnessConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid harness configuration in {path}: {e}") from e

    if project_dir is not None:
        compose = config.compose.model_copy(update={"project_dir": project_dir})
        config = config.model_copy(update={"compose": compose})
    return config
