"""Container runtime backed by the docker and compose command line tools."""

import asyncio
import logging
import shutil
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from compose_test_harness.errors import RuntimeCommandError
from compose_test_harness.models.config import ComposeConfig
from compose_test_harness.models.result import ContainerState, parse_container_state
from compose_test_harness.runtime.base import CommandResult, ContainerRuntime

log = logging.getLogger(__name__)

STATE_FORMAT = "{{.State.Status}}|{{if .State.Health}}{{.State.Health.Status}}{{end}}"
NOT_FOUND_MARKERS = ("no such object", "no such container")

DEFAULT_COMMAND_TIMEOUT = 30.0
GROUP_COMMAND_TIMEOUT = 900.0


def resolve_compose_command() -> Sequence[str]:
    """Prefer the standalone docker-compose binary, else the docker plugin."""
    if shutil.which("docker-compose"):
        return ("docker-compose",)
    return ("docker", "compose")


@dataclass(frozen=True, kw_only=True)
class ComposeRuntime(ContainerRuntime):
    """Container runtime driving ``docker`` and ``docker compose``."""

    config: ComposeConfig
    mode: Literal["dev", "prod"] = "dev"
    compose_command: Sequence[str] = field(default_factory=resolve_compose_command)
    docker_command: str = "docker"

    async def container_state(self, name: str) -> ContainerState | None:
        """Inspect the container's lifecycle and health status."""
        result = await self._run(
            self.docker_command, "inspect", "--format", STATE_FORMAT, name
        )
        if not result.ok:
            if any(marker in result.stderr.lower() for marker in NOT_FOUND_MARKERS):
                return None
            raise RuntimeCommandError(
                [self.docker_command, "inspect", name],
                result.returncode,
                result.stderr.strip(),
            )

        status, _, health = result.stdout.strip().partition("|")
        return parse_container_state(status, health or None)

    async def list_names(self, *, include_stopped: bool = False) -> Sequence[str]:
        argv = [self.docker_command, "ps", "--format", "{{.Names}}"]
        if include_stopped:
            argv.insert(2, "-a")
        result = await self._run(*argv)
        if not result.ok:
            raise RuntimeCommandError(argv, result.returncode, result.stderr.strip())
        return [line for line in result.stdout.splitlines() if line.strip()]

    async def exec(
        self, name: str, *argv: str, timeout: float | None = None
    ) -> CommandResult:
        return await self._run(
            self.docker_command,
            "exec",
            name,
            *argv,
            timeout=timeout or DEFAULT_COMMAND_TIMEOUT,
        )

    async def run(self, image: str, *argv: str) -> CommandResult:
        return await self._run(self.docker_command, "run", "--rm", image, *argv)

    async def inspect(self, target: str, fmt: str) -> str | None:
        result = await self._run(
            self.docker_command, "inspect", "--format", fmt, target
        )
        if not result.ok:
            return None
        return result.stdout.strip()

    async def logs(self, name: str, lines: int = 50) -> str:
        result = await self._run(
            self.docker_command, "logs", "--tail", str(lines), name
        )
        return (result.stdout + result.stderr).strip()

    async def restart(self, name: str) -> bool:
        result = await self._run(self.docker_command, "restart", name)
        return result.ok

    async def compose_available(self) -> bool:
        result = await self._run(*self.compose_command, "version")
        return result.ok

    async def validate_config(self) -> bool:
        result = await self._compose("config", "--quiet")
        if not result.ok:
            log.error("Compose configuration is invalid: %s", result.stderr.strip())
        return result.ok

    async def build_group(self) -> bool:
        result = await self._compose("build", timeout=GROUP_COMMAND_TIMEOUT)
        if not result.ok:
            log.error("Image build failed: %s", result.stderr.strip())
        return result.ok

    async def start_group(self) -> bool:
        result = await self._compose("up", "-d", timeout=GROUP_COMMAND_TIMEOUT)
        if not result.ok:
            log.error("Failed to start services: %s", result.stderr.strip())
        return result.ok

    async def stop_group(self, *, remove_volumes: bool = False) -> bool:
        argv = ["down", "--remove-orphans"]
        if remove_volumes:
            argv.append("-v")
        result = await self._compose(*argv, timeout=GROUP_COMMAND_TIMEOUT)
        if not result.ok:
            log.warning("Failed to stop services: %s", result.stderr.strip())
        return result.ok

    async def _compose(
        self, *argv: str, timeout: float = DEFAULT_COMMAND_TIMEOUT
    ) -> CommandResult:
        file_args: list[str] = []
        for compose_file in self.config.compose_files(self.mode):
            file_args.extend(["-f", str(compose_file)])
        env_file = self.config.project_dir / self.config.env_file
        if env_file.exists():
            file_args.extend(["--env-file", str(env_file)])
        return await self._run(
            *self.compose_command, *file_args, *argv, timeout=timeout
        )

    async def _run(
        self, *argv: str, timeout: float = DEFAULT_COMMAND_TIMEOUT
    ) -> CommandResult:
        """Run a command, killing it if it outlives the timeout."""
        log.debug("Running: %s", " ".join(argv))
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=self.config.project_dir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return CommandResult(returncode=127, stderr=f"{argv[0]}: command not found")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            return CommandResult(
                returncode=124, stderr=f"timed out after {timeout:.1f}s"
            )
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        returncode = process.returncode if process.returncode is not None else -1
        return CommandResult(
            returncode=returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
