"""Host checks that must pass before anything is built or started."""

import logging
import shutil
from collections.abc import Sequence
from typing import Literal

from compose_test_harness.errors import ConfigurationError, MissingToolError
from compose_test_harness.models.config import HarnessConfig
from compose_test_harness.probes.port import PortProbe
from compose_test_harness.runtime.base import ContainerRuntime

log = logging.getLogger(__name__)


async def check_tools(runtime: ContainerRuntime, tools: Sequence[str]) -> None:
    """Ensure every required tool and the compose tooling can be invoked.

    Raises:
        MissingToolError: If any tool is missing from PATH, or compose is
            unavailable as both a standalone binary and a docker plugin

    """
    missing = [tool for tool in tools if shutil.which(tool) is None]
    if not missing and not await runtime.compose_available():
        missing.append("docker-compose")
    if missing:
        raise MissingToolError(missing)
    log.info("✓ Required tools available: %s", ", ".join([*tools, "compose"]))


async def check_config(
    runtime: ContainerRuntime, config: HarnessConfig, mode: Literal["dev", "prod"]
) -> None:
    """Ensure compose files exist and the group definition validates.

    A missing env file only warns; compose treats it as optional.

    Raises:
        ConfigurationError: If a compose file is missing or invalid

    """
    compose = config.compose
    for path in compose.compose_files(mode):
        if not path.is_file():
            raise ConfigurationError(f"Compose file not found: {path}")

    env_file = compose.project_dir / compose.env_file
    if not env_file.is_file():
        log.warning("Environment file %s not found, using defaults", env_file)

    if not await runtime.validate_config():
        raise ConfigurationError("Compose configuration failed validation")
    log.info("✓ Compose configuration is valid")


async def check_ports(ports: PortProbe, required: Sequence[int]) -> None:
    """Ensure none of the ports the group publishes is already taken.

    Raises:
        ConfigurationError: If any port accepts connections on localhost

    """
    in_use = [port for port in required if await ports.is_open("localhost", port)]
    if in_use:
        raise ConfigurationError(
            f"Port(s) already in use: {', '.join(map(str, in_use))}"
        )
    log.info("✓ Required ports available")
