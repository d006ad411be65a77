"""TCP reachability checks with retry-until-deadline semantics."""

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum

log = logging.getLogger(__name__)


class PortStatus(StrEnum):
    """Outcome of waiting for a port."""

    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, kw_only=True)
class PortProbe:
    """Polls a host:port until it accepts connections or the deadline passes."""

    interval: float = 2.0
    attempt_timeout: float = 1.0
    progress_interval: float = 10.0

    async def is_open(self, host: str, port: int, timeout: float | None = None) -> bool:
        """Single connection attempt bounded by ``timeout``."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout if timeout is not None else self.attempt_timeout,
            )
        except (OSError, TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def await_open(self, host: str, port: int, timeout: float) -> PortStatus:
        """Wait for the port to accept connections.

        Args:
            host: Host name or address
            port: TCP port
            timeout: Total seconds to keep trying

        Returns:
            READY once a connection succeeds, TIMED_OUT when the deadline
            elapses first

        """
        loop = asyncio.get_running_loop()
        start = loop.time()
        deadline = start + timeout
        next_progress = start + self.progress_interval

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                log.info("%s:%d not available after %.0fs", host, port, timeout)
                return PortStatus.TIMED_OUT

            if await self.is_open(host, port, min(self.attempt_timeout, remaining)):
                log.debug("%s:%d is available", host, port)
                return PortStatus.READY

            now = loop.time()
            if now >= next_progress:
                log.info(
                    "Still waiting for %s:%d... (%.0fs/%.0fs)",
                    host,
                    port,
                    now - start,
                    timeout,
                )
                next_progress = now + self.progress_interval

            await asyncio.sleep(max(0.0, min(self.interval, deadline - now)))
