"""Readiness strategies, one per service kind.

Every checker runs the same sequence: the container must exist and not
have exited, its port must accept connections, then a kind-specific
liveness probe is repeated until it succeeds or the time slice runs out.
Checkers report the outcome as a ReadinessResult and never raise.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass

import aiohttp

from compose_test_harness.http import HttpClient
from compose_test_harness.models.config import ServiceDescriptor, ServiceKind
from compose_test_harness.models.result import ReadinessResult
from compose_test_harness.probes.container import ContainerStatusProbe
from compose_test_harness.probes.port import PortProbe, PortStatus
from compose_test_harness.runtime.base import ContainerRuntime

log = logging.getLogger(__name__)


class FatalReadinessError(Exception):
    """The service can never become ready during this wait."""


@dataclass(frozen=True, kw_only=True)
class ReadinessChecker(ABC):
    """Polling state machine shared by all service kinds."""

    containers: ContainerStatusProbe
    ports: PortProbe
    progress_interval: float = 10.0

    @abstractmethod
    async def probe(self, descriptor: ServiceDescriptor, timeout: float) -> str | None:
        """Run one liveness attempt.

        Args:
            descriptor: Service being checked
            timeout: Upper bound for this attempt in seconds

        Returns:
            None when the service answered as expected, otherwise a short
            description of what was observed

        Raises:
            FatalReadinessError: If polling further is pointless

        """

    async def check(
        self, descriptor: ServiceDescriptor, timeout: float
    ) -> ReadinessResult:
        """Wait up to ``timeout`` seconds for the service to become ready."""
        loop = asyncio.get_running_loop()
        start = loop.time()
        log.info(
            "Waiting for %s to be ready (timeout: %.0fs)...", descriptor.name, timeout
        )

        try:
            error = await self._wait(descriptor, start + timeout)
        except FatalReadinessError as e:
            error = str(e)
        except Exception as e:
            log.error(
                "Readiness check for %s crashed: %s", descriptor.name, e, exc_info=e
            )
            error = f"{type(e).__name__}: {e}"

        elapsed = loop.time() - start
        if error is None:
            log.info("✓ %s is ready (%.1fs)", descriptor.name, elapsed)
            return ReadinessResult(
                service_name=descriptor.name,
                ready=True,
                elapsed=elapsed,
                mandatory=descriptor.mandatory,
            )

        log.log(
            logging.ERROR if descriptor.mandatory else logging.WARNING,
            "%s not ready after %.0fs: %s",
            descriptor.name,
            elapsed,
            error,
        )
        await self._log_container_output(descriptor)
        return ReadinessResult(
            service_name=descriptor.name,
            ready=False,
            elapsed=elapsed,
            last_error=error,
            mandatory=descriptor.mandatory,
        )

    async def _wait(self, descriptor: ServiceDescriptor, deadline: float) -> str | None:
        loop = asyncio.get_running_loop()
        start = loop.time()

        if not await self.containers.exists(descriptor.container):
            raise FatalReadinessError(f"container {descriptor.container} not found")
        state = await self.containers.status(descriptor.container)
        if state.is_terminal:
            raise FatalReadinessError(
                f"container {descriptor.container} is {state}, not running"
            )

        port_status = await self.ports.await_open(
            descriptor.host, descriptor.port, max(0.0, deadline - loop.time())
        )
        if port_status is PortStatus.TIMED_OUT:
            return f"port {descriptor.host}:{descriptor.port} not reachable"

        next_progress = start + self.progress_interval
        while True:
            remaining = deadline - loop.time()
            try:
                error = await self.probe(descriptor, max(remaining, 0.1))
            except (aiohttp.ClientError, TimeoutError, OSError) as e:
                error = _describe(e)
            if error is None:
                return None

            now = loop.time()
            if now >= deadline:
                return error
            if now >= next_progress:
                log.info(
                    "Still waiting for %s... (%.0fs/%.0fs) [%s]",
                    descriptor.name,
                    now - start,
                    deadline - start,
                    error,
                )
                next_progress = now + self.progress_interval

            await asyncio.sleep(min(descriptor.poll_interval, deadline - now))

    async def _log_container_output(self, descriptor: ServiceDescriptor) -> None:
        if not descriptor.log_lines:
            return
        try:
            output = await asyncio.wait_for(
                self.containers.runtime.logs(
                    descriptor.container, descriptor.log_lines
                ),
                self.containers.query_timeout * 5,
            )
        except (TimeoutError, OSError) as e:
            log.debug("Could not read logs of %s: %s", descriptor.container, e)
            return
        if output:
            log.warning(
                "Last %d log lines of %s:\n%s",
                descriptor.log_lines,
                descriptor.container,
                output,
            )


@dataclass(frozen=True, kw_only=True)
class CommandReadinessChecker(ReadinessChecker):
    """Runs the descriptor's readiness command inside the container."""

    runtime: ContainerRuntime

    async def probe(self, descriptor: ServiceDescriptor, timeout: float) -> str | None:
        if not descriptor.readiness_command:
            raise FatalReadinessError(f"no readiness command for {descriptor.name}")
        result = await self.runtime.exec(
            descriptor.container, *descriptor.readiness_command, timeout=timeout
        )
        if not result.ok:
            detail = (result.stderr or result.stdout).strip()
            return f"readiness command exited with {result.returncode}: {detail}"
        if descriptor.expected_reply is not None:
            reply = result.stdout.strip()
            if reply != descriptor.expected_reply:
                return f"expected reply {descriptor.expected_reply!r}, got {reply!r}"
        return None


@dataclass(frozen=True, kw_only=True)
class DatabaseReadinessChecker(CommandReadinessChecker):
    """Database is ready once its readiness command exits successfully."""


@dataclass(frozen=True, kw_only=True)
class CacheReadinessChecker(CommandReadinessChecker):
    """Cache is ready once a ping round trip returns the exact expected reply."""

    async def probe(self, descriptor: ServiceDescriptor, timeout: float) -> str | None:
        if descriptor.expected_reply is None:
            descriptor = descriptor.model_copy(update={"expected_reply": "PONG"})
        return await super().probe(descriptor, timeout)


@dataclass(frozen=True, kw_only=True)
class HttpReadinessChecker(ReadinessChecker):
    """Service is ready once its health path answers with a 2xx status."""

    http: HttpClient

    async def probe(self, descriptor: ServiceDescriptor, timeout: float) -> str | None:
        url = f"{descriptor.base_url}{descriptor.health_path or '/'}"
        response = await self.http.get(url, timeout=timeout)
        if response.ok:
            return None
        return f"HTTP {response.status} from {url}"


@dataclass(frozen=True, kw_only=True)
class ObjectStoreReadinessChecker(HttpReadinessChecker):
    """Object store liveness endpoint must answer with success."""


@dataclass(frozen=True, kw_only=True)
class ApplicationReadinessChecker(HttpReadinessChecker):
    """Application health endpoint, failing fast if the container dies."""

    async def probe(self, descriptor: ServiceDescriptor, timeout: float) -> str | None:
        state = await self.containers.status(descriptor.container)
        if state.is_terminal:
            raise FatalReadinessError(
                f"container {descriptor.container} exited unexpectedly (state: {state})"
            )
        return await super().probe(descriptor, timeout)


@dataclass(frozen=True, kw_only=True)
class ReverseProxyReadinessChecker(ReadinessChecker):
    """Reverse proxy only needs its port to accept connections."""

    async def probe(self, descriptor: ServiceDescriptor, timeout: float) -> str | None:
        return None


def create_checkers(
    *,
    containers: ContainerStatusProbe,
    ports: PortProbe,
    runtime: ContainerRuntime,
    http: HttpClient,
    progress_interval: float = 10.0,
) -> Mapping[ServiceKind, ReadinessChecker]:
    """Build one checker per service kind sharing the injected probes."""
    return {
        "database": DatabaseReadinessChecker(
            containers=containers,
            ports=ports,
            runtime=runtime,
            progress_interval=progress_interval,
        ),
        "cache": CacheReadinessChecker(
            containers=containers,
            ports=ports,
            runtime=runtime,
            progress_interval=progress_interval,
        ),
        "object-store": ObjectStoreReadinessChecker(
            containers=containers,
            ports=ports,
            http=http,
            progress_interval=progress_interval,
        ),
        "application": ApplicationReadinessChecker(
            containers=containers,
            ports=ports,
            http=http,
            progress_interval=progress_interval,
        ),
        "reverse-proxy": ReverseProxyReadinessChecker(
            containers=containers,
            ports=ports,
            progress_interval=progress_interval,
        ),
    }


def _describe(error: BaseException) -> str:
    if isinstance(error, TimeoutError):
        return "timed out"
    return f"{type(error).__name__}: {error}" if str(error) else type(error).__name__
