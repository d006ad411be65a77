"""Assertion helpers shared by the suite modules."""

import logging

from compose_test_harness.errors import CaseFailure, CaseSkipped
from compose_test_harness.models.config import ServiceDescriptor, ServiceKind
from compose_test_harness.probes.port import PortStatus
from compose_test_harness.runtime.base import CommandResult
from compose_test_harness.suites.runner import CaseContext

log = logging.getLogger(__name__)


def expect(condition: bool, message: str) -> None:
    """Fail the current case with ``message`` unless ``condition`` holds."""
    if not condition:
        raise CaseFailure(message)


def service_of_kind(context: CaseContext, kind: ServiceKind) -> ServiceDescriptor:
    """Return the first configured service of a kind, skipping if none."""
    for service in context.config.services:
        if service.kind == kind:
            return service
    raise CaseSkipped(f"no {kind} service configured")


async def expect_running(context: CaseContext, container: str) -> None:
    names = await context.runtime.list_names()
    expect(container in names, f"container {container} is not running")


async def expect_port(
    context: CaseContext, host: str, port: int, timeout: float = 30
) -> None:
    status = await context.ports.await_open(host, port, timeout)
    expect(
        status is PortStatus.READY,
        f"{host}:{port} not reachable after {timeout:.0f}s",
    )


async def exec_ok(context: CaseContext, container: str, *argv: str) -> CommandResult:
    """Run a command in a container and fail the case if it exits non-zero."""
    result = await context.runtime.exec(container, *argv)
    expect(
        result.ok,
        f"{' '.join(argv)} exited with {result.returncode}: "
        f"{(result.stderr or result.stdout).strip()}",
    )
    return result


def soft_expect(condition: bool, message: str) -> None:
    """Log a warning instead of failing; for checks that vary by deployment."""
    if not condition:
        log.warning(message)
