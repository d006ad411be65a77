"""Models for the harness configuration loaded from harness.yaml."""

from collections.abc import Sequence
from pathlib import Path
from typing import Any, Literal, TypeAlias

from pydantic import Field, model_validator

from compose_test_harness.models.base import Model

ServiceKind: TypeAlias = Literal[
    "database", "cache", "object-store", "application", "reverse-proxy"
]

SuiteName: TypeAlias = Literal[
    "build", "services", "api", "websocket", "integration", "cleanup"
]

# Services are always checked in this order: later kinds depend on earlier ones.
SERVICE_KIND_ORDER: Sequence[ServiceKind] = (
    "database",
    "cache",
    "object-store",
    "application",
    "reverse-proxy",
)

SUITE_ORDER: Sequence[SuiteName] = (
    "build",
    "services",
    "api",
    "websocket",
    "integration",
    "cleanup",
)

QUICK_SUITES: Sequence[SuiteName] = ("build", "services", "api")

# Probe settings filled in for a kind when the service does not set them.
KIND_DEFAULTS: dict[ServiceKind, dict[str, Any]] = {
    "database": {"readiness_command": ("pg_isready", "-U", "postgres")},
    "cache": {"readiness_command": ("redis-cli", "ping"), "expected_reply": "PONG"},
    "object-store": {"health_path": "/minio/health/live"},
    "application": {"health_path": "/health"},
    "reverse-proxy": {},
}

COMMAND_PROBED_KINDS: frozenset[ServiceKind] = frozenset({"database", "cache"})


class ServiceDescriptor(Model):
    """Static description of one service in the container group.

    Probe settings left unset take the defaults of the service kind, see
    ``KIND_DEFAULTS``.
    """

    name: str = Field(..., description="Human-readable service name")
    container: str = Field(..., description="Container name in the runtime")
    kind: ServiceKind = Field(..., description="Readiness strategy to apply")
    host: str = Field(default="localhost", description="Host the port is published on")
    port: int = Field(..., ge=1, le=65535, description="Published TCP port")
    poll_interval: float = Field(default=2.0, gt=0, description="Seconds between polls")
    timeout: float = Field(default=60.0, gt=0, description="Per-service ceiling")
    mandatory: bool = Field(default=True, description="Abort the run if not ready")
    health_path: str | None = Field(
        default=None, description="HTTP liveness path for HTTP-probed kinds"
    )
    readiness_command: Sequence[str] = Field(
        default_factory=tuple,
        description="Command run inside the container for command-probed kinds",
    )
    expected_reply: str | None = Field(
        default=None, description="Exact stdout the readiness command must print"
    )
    log_lines: int = Field(default=20, ge=0, description="Log lines shown on failure")

    @model_validator(mode="before")
    @classmethod
    def _apply_kind_defaults(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("kind"), str):
            return {**KIND_DEFAULTS.get(data["kind"], {}), **data}
        return data

    @model_validator(mode="after")
    def _command_for_command_probed_kinds(self) -> "ServiceDescriptor":
        if self.kind in COMMAND_PROBED_KINDS and not self.readiness_command:
            raise ValueError(
                f"Service {self.name!r} of kind {self.kind} needs a readiness_command"
            )
        return self

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class EndpointConfig(Model):
    """Endpoints the test suites talk to."""

    api_url: str = "http://localhost:3000"
    proxy_url: str = "http://localhost"
    metrics_url: str = "http://localhost:9090"
    minio_url: str = "http://localhost:9000"


class ComposeConfig(Model):
    """Container group definition handed to the compose CLI."""

    project_dir: Path = Path(".")
    compose_file: str = "docker-compose.yml"
    dev_compose_file: str = "docker-compose.dev.yml"
    env_file: str = ".env"
    image: str = "happy-server:test"
    dockerfile: str = "Dockerfile"
    container_prefix: str = "happy-server"

    def compose_files(self, mode: Literal["dev", "prod"]) -> Sequence[Path]:
        """Compose files for the selected mode, in override order."""
        files = [self.project_dir / self.compose_file]
        if mode == "dev":
            files.append(self.project_dir / self.dev_compose_file)
        return files


class ProbeConfig(Model):
    """Timing parameters shared by all probes."""

    container_query_timeout: float = Field(default=0.9, gt=0, lt=1.0)
    port_interval: float = Field(default=2.0, gt=0)
    port_attempt_timeout: float = Field(default=1.0, gt=0)
    http_timeout: float = Field(default=5.0, gt=0)
    progress_interval: float = Field(default=10.0, gt=0)


class HarnessConfig(Model):
    """Complete harness configuration."""

    services: Sequence[ServiceDescriptor]
    endpoints: EndpointConfig = Field(default_factory=EndpointConfig)
    compose: ComposeConfig = Field(default_factory=ComposeConfig)
    probes: ProbeConfig = Field(default_factory=ProbeConfig)
    readiness_timeout: float = Field(default=120.0, gt=0)
    case_timeout: float = Field(default=60.0, gt=0)
    fixtures_dir: Path | None = Field(
        default=None, description="Directory holding the integration JSON fixtures"
    )
    required_ports: Sequence[int] = (3000, 5432, 6379, 9000, 80, 9090)
    required_tools: Sequence[str] = ("docker",)

    @model_validator(mode="after")
    def _unique_service_names(self) -> "HarnessConfig":
        names = [service.name for service in self.services]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate service names: {', '.join(duplicates)}")
        return self

    def ordered_services(self) -> Sequence[ServiceDescriptor]:
        """Services sorted into dependency order (stable within a kind)."""
        return sorted(
            self.services, key=lambda service: SERVICE_KIND_ORDER.index(service.kind)
        )
