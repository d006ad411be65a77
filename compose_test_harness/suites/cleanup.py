"""Teardown checks: the group stops cleanly and leaves nothing running.

This suite stops the container group itself, so it must run last. The
orchestrator's final cleanup relies on stopping being idempotent.
"""

import asyncio

from compose_test_harness.suites.checks import expect, soft_expect
from compose_test_harness.suites.manifest import SuiteManifest
from compose_test_harness.suites.runner import CaseContext, TestCase


async def services_stop_cleanly(context: CaseContext) -> None:
    expect(await context.runtime.stop_group(), "stopping the container group failed")


async def containers_stopped(context: CaseContext) -> None:
    await asyncio.sleep(2)
    prefix = context.config.compose.container_prefix
    running = [
        name for name in await context.runtime.list_names() if prefix in name
    ]
    expect(not running, f"containers still running: {', '.join(running)}")


async def ports_released(context: CaseContext) -> None:
    await asyncio.sleep(2)
    in_use = [
        port
        for port in context.config.required_ports
        if await context.ports.is_open("localhost", port)
    ]
    soft_expect(
        not in_use,
        f"ports still in use after cleanup: {', '.join(map(str, in_use))}",
    )


async def restart_possible(context: CaseContext) -> None:
    compose = context.config.compose
    compose_file = compose.project_dir / compose.compose_file
    expect(compose_file.is_file(), f"{compose_file} not found")
    expect(
        await context.runtime.validate_config(), f"{compose_file} has syntax errors"
    )


async def cleanup_idempotent(context: CaseContext) -> None:
    first = await context.runtime.stop_group()
    second = await context.runtime.stop_group()
    expect(first and second, "stopping an already stopped group failed")


async def logs_accessible(context: CaseContext) -> None:
    app = next(
        (s for s in context.config.services if s.kind == "application"), None
    )
    if app is None:
        return
    output = await context.runtime.logs(app.container, lines=10)
    soft_expect(bool(output), f"could not access logs of {app.container}")


cleanup_suite = SuiteManifest(
    key="cleanup",
    title="Cleanup Tests",
    cases=(
        TestCase(name="Services stop cleanly", func=services_stop_cleanly),
        TestCase(name="Running containers stopped", func=containers_stopped),
        TestCase(name="Ports released after cleanup", func=ports_released),
        TestCase(name="Services can restart after cleanup", func=restart_possible),
        TestCase(name="Cleanup is idempotent", func=cleanup_idempotent),
        TestCase(name="Logs accessible after cleanup", func=logs_accessible),
    ),
)
