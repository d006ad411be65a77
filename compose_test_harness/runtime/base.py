"""Abstract base class for container runtimes."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from compose_test_harness.models.result import ContainerState


@dataclass(frozen=True, kw_only=True)
class CommandResult:
    """Captured output of a command run by the runtime."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(frozen=True, kw_only=True)
class ContainerRuntime(ABC):
    """Operations the harness needs from a container runtime.

    Group operations act on the whole container group (a compose project)
    and report success as a bool. Per-container queries never raise for a
    container that does not exist.
    """

    @abstractmethod
    async def container_state(self, name: str) -> ContainerState | None:
        """Return the container's state, or None if it does not exist.

        Raises:
            RuntimeCommandError: If the runtime could not be queried

        """

    @abstractmethod
    async def list_names(self, *, include_stopped: bool = False) -> Sequence[str]:
        """List container names, optionally including stopped containers."""

    @abstractmethod
    async def exec(
        self, name: str, *argv: str, timeout: float | None = None
    ) -> CommandResult:
        """Run a command inside a running container."""

    @abstractmethod
    async def run(self, image: str, *argv: str) -> CommandResult:
        """Run a command in a throwaway container created from an image."""

    @abstractmethod
    async def inspect(self, target: str, fmt: str) -> str | None:
        """Inspect a container or image with a Go template, None if absent."""

    @abstractmethod
    async def logs(self, name: str, lines: int = 50) -> str:
        """Return the last lines of a container's output."""

    @abstractmethod
    async def restart(self, name: str) -> bool:
        """Restart a single container."""

    @abstractmethod
    async def compose_available(self) -> bool:
        """Check that the compose tooling can be invoked."""

    @abstractmethod
    async def validate_config(self) -> bool:
        """Check that the container group definition is syntactically valid."""

    @abstractmethod
    async def build_group(self) -> bool:
        """Build the images of the container group."""

    @abstractmethod
    async def start_group(self) -> bool:
        """Start the container group detached."""

    @abstractmethod
    async def stop_group(self, *, remove_volumes: bool = False) -> bool:
        """Stop and remove the container group; succeeds if already stopped."""

    async def exists(self, name: str) -> bool:
        """Check whether a container exists in any state."""
        return await self.container_state(name) is not None
