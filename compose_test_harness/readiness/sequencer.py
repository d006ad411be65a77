"""Run readiness checks in dependency order under one overall deadline."""

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from compose_test_harness.models.config import (
    SERVICE_KIND_ORDER,
    ServiceDescriptor,
    ServiceKind,
)
from compose_test_harness.models.result import ReadinessResult
from compose_test_harness.readiness.checkers import ReadinessChecker

log = logging.getLogger(__name__)


def _loop_time() -> float:
    return asyncio.get_running_loop().time()


@dataclass(frozen=True, kw_only=True)
class ReadinessOutcome:
    """Per-service results in check order plus the overall verdict."""

    results: Sequence[ReadinessResult]
    success: bool

    @property
    def failed_service(self) -> ReadinessResult | None:
        """First checked mandatory service that did not become ready."""
        for result in self.results:
            if result.checked and result.mandatory and not result.ready:
                return result
        return None


@dataclass(frozen=True, kw_only=True)
class ReadinessSequencer:
    """Checks services one after another, sharing a single time budget.

    Each service gets ``min(remaining, service.timeout)``. A non-mandatory
    service that fails only logs a warning; the first mandatory failure
    stops the sequence and the services after it are reported not-checked.
    """

    checkers: Mapping[ServiceKind, ReadinessChecker]
    clock: Callable[[], float] = field(default=_loop_time)

    async def wait_for_all(
        self, services: Sequence[ServiceDescriptor], total_timeout: float
    ) -> ReadinessOutcome:
        """Wait for every service to become ready.

        Args:
            services: Services to check, in any order
            total_timeout: Overall budget in seconds shared by all services

        Returns:
            Outcome with one result per service in dependency order

        """
        ordered = sorted(services, key=lambda s: SERVICE_KIND_ORDER.index(s.kind))
        start = self.clock()
        deadline = start + total_timeout
        results: list[ReadinessResult] = []

        log.info(
            "Waiting for %d service(s) (total timeout: %.0fs)...",
            len(ordered),
            total_timeout,
        )

        for index, service in enumerate(ordered):
            remaining = deadline - self.clock()
            if remaining <= 0:
                log.error(
                    "Readiness budget exhausted before checking %s", service.name
                )
                results.extend(
                    ReadinessResult.not_checked(s.name, mandatory=s.mandatory)
                    for s in ordered[index:]
                )
                return ReadinessOutcome(results=results, success=False)

            budget = min(remaining, service.timeout)
            log.debug("Checking %s with %.1fs budget", service.name, budget)
            result = await self.checkers[service.kind].check(service, budget)
            results.append(result)

            if result.ready:
                continue

            if not service.mandatory:
                log.warning(
                    "%s not ready, but continuing (non-critical): %s",
                    service.name,
                    result.last_error,
                )
                continue

            log.error(
                "Mandatory service %s not ready: %s", service.name, result.last_error
            )
            results.extend(
                ReadinessResult.not_checked(s.name, mandatory=s.mandatory)
                for s in ordered[index + 1 :]
            )
            return ReadinessOutcome(results=results, success=False)

        log.info("All services ready in %.0fs", self.clock() - start)
        return ReadinessOutcome(results=results, success=True)
