"""Bounded queries for container existence and lifecycle state."""

import asyncio
import logging
from dataclasses import dataclass

from compose_test_harness.errors import RuntimeCommandError
from compose_test_harness.models.result import ContainerState
from compose_test_harness.runtime.base import ContainerRuntime

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class ContainerStatusProbe:
    """Read-only container queries that never block past ``query_timeout``."""

    runtime: ContainerRuntime
    query_timeout: float = 0.9

    async def exists(self, name: str) -> bool:
        """Check whether the container exists.

        Only a positive "no such container" answer from the runtime yields
        False; a query that fails or times out cannot prove absence and
        yields True.
        """
        try:
            state = await asyncio.wait_for(
                self.runtime.container_state(name), self.query_timeout
            )
        except TimeoutError:
            log.debug("Existence query for %s timed out", name)
            return True
        except RuntimeCommandError as e:
            log.debug("Existence query for %s failed: %s", name, e)
            return True
        return state is not None

    async def status(self, name: str) -> ContainerState:
        """Return the container state; UNKNOWN if absent or unanswerable."""
        try:
            state = await asyncio.wait_for(
                self.runtime.container_state(name), self.query_timeout
            )
        except TimeoutError:
            log.debug("Status query for %s timed out", name)
            return ContainerState.UNKNOWN
        except RuntimeCommandError as e:
            log.debug("Status query for %s failed: %s", name, e)
            return ContainerState.UNKNOWN
        return state if state is not None else ContainerState.UNKNOWN
