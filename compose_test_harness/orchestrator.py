"""Run orchestrator driving one harness run from prerequisites to cleanup."""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Literal

from compose_test_harness.errors import ConfigurationError, MissingToolError
from compose_test_harness.http import HttpClient
from compose_test_harness.models.config import QUICK_SUITES, SUITE_ORDER, HarnessConfig
from compose_test_harness.models.result import (
    ExitStatus,
    Outcome,
    RunReport,
    RunReportBuilder,
    SuiteResult,
    TestCaseResult,
)
from compose_test_harness.prerequisites import check_config, check_ports, check_tools
from compose_test_harness.probes.port import PortProbe
from compose_test_harness.readiness.sequencer import ReadinessSequencer
from compose_test_harness.reporting import log_run_summary, write_report
from compose_test_harness.runtime.base import ContainerRuntime
from compose_test_harness.suites.loading import SuiteNotFoundError, load_suite_manifest
from compose_test_harness.suites.manifest import SuiteManifest
from compose_test_harness.suites.runner import CaseContext

log = logging.getLogger(__name__)


class Phase(StrEnum):
    """Phases of a run, in the order they are entered."""

    INIT = "init"
    PREREQ_CHECK = "prereq_check"
    BUILDING = "building"
    STARTING = "starting"
    AWAITING_READY = "awaiting_ready"
    TESTING = "testing"
    REPORTING = "reporting"
    CLEANUP = "cleanup"
    DONE = "done"


# Status recorded when a phase fails with an unexpected error.
PHASE_FAILURE_STATUS = {
    Phase.INIT: ExitStatus.CONFIG_ERROR,
    Phase.PREREQ_CHECK: ExitStatus.CONFIG_ERROR,
    Phase.BUILDING: ExitStatus.BUILD_FAILURE,
    Phase.STARTING: ExitStatus.STARTUP_FAILURE,
    Phase.AWAITING_READY: ExitStatus.READINESS_FAILURE,
    Phase.TESTING: ExitStatus.TEST_FAILURE,
}


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(kw_only=True)
class Orchestrator:
    """Drives a run through its phases and owns the run report.

    Cleanup runs exactly once on every path out of ``run``, including
    failures and interrupts, unless ``keep`` is set.
    """

    runtime: ContainerRuntime
    http: HttpClient
    ports: PortProbe
    config: HarnessConfig
    sequencer: ReadinessSequencer
    mode: Literal["dev", "prod"] = "dev"
    quick: bool = False
    keep: bool = False
    clean: bool = False
    results_dir: Path | None = None
    suite_loader: Callable[[str], SuiteManifest] = load_suite_manifest
    clock: Callable[[], datetime] = _now
    phase: Phase = field(default=Phase.INIT, init=False)
    _cleaned_up: bool = field(default=False, init=False, repr=False)

    @property
    def suite_keys(self) -> Sequence[str]:
        """Suites selected for this run, in execution order."""
        return QUICK_SUITES if self.quick else SUITE_ORDER

    async def run(self) -> RunReport:
        """Execute the run and return its frozen report.

        Returns:
            The report; its ``status`` is the process exit code

        """
        builder = RunReportBuilder(started_at=self.clock())
        try:
            try:
                await self._execute(builder)
            except asyncio.CancelledError:
                self._interrupted(builder)
            except Exception as e:
                log.error("Unexpected error during %s: %s", self.phase, e, exc_info=e)
                builder.fail(
                    PHASE_FAILURE_STATUS.get(self.phase, ExitStatus.TEST_FAILURE),
                    self.phase,
                    f"{type(e).__name__}: {e}",
                )
            report = self._report(builder)
        finally:
            await self.cleanup()

        self._enter(Phase.DONE)
        return report

    async def cleanup(self) -> None:
        """Stop the container group; further calls are no-ops."""
        if self._cleaned_up:
            log.debug("Cleanup already performed")
            return
        self._cleaned_up = True
        self._enter(Phase.CLEANUP)

        if self.keep:
            log.info("Keeping containers running (--keep)")
            return

        log.info("Stopping containers...")
        try:
            stopped = await self.runtime.stop_group()
        except Exception as e:
            log.error("Cleanup failed: %s", e, exc_info=e)
            return
        if stopped:
            log.info("✓ Containers stopped")

    async def _execute(self, builder: RunReportBuilder) -> None:
        self._enter(Phase.PREREQ_CHECK)
        try:
            await check_tools(self.runtime, self.config.required_tools)
        except MissingToolError as e:
            builder.fail(ExitStatus.MISSING_TOOL, self.phase, str(e))
            return
        try:
            await check_config(self.runtime, self.config, self.mode)
            if self.clean:
                log.info("Cleaning up existing containers and volumes...")
                await self.runtime.stop_group(remove_volumes=True)
            await check_ports(self.ports, self.config.required_ports)
        except ConfigurationError as e:
            builder.fail(ExitStatus.CONFIG_ERROR, self.phase, str(e))
            return

        self._enter(Phase.BUILDING)
        if not await self.runtime.build_group():
            builder.fail(ExitStatus.BUILD_FAILURE, self.phase, "image build failed")
            return

        self._enter(Phase.STARTING)
        if not await self.runtime.start_group():
            builder.fail(
                ExitStatus.STARTUP_FAILURE, self.phase, "services failed to start"
            )
            return

        self._enter(Phase.AWAITING_READY)
        outcome = await self.sequencer.wait_for_all(
            self.config.services, self.config.readiness_timeout
        )
        builder.readiness.extend(outcome.results)
        if not outcome.success:
            failed = outcome.failed_service
            if failed is not None:
                reason = f"{failed.service_name} not ready: {failed.last_error}"
            else:
                reason = "readiness budget exhausted"
            builder.fail(ExitStatus.READINESS_FAILURE, self.phase, reason)
            return

        self._enter(Phase.TESTING)
        for key in self.suite_keys:
            builder.suite_results.append(await self._run_suite(key))

    async def _run_suite(self, key: str) -> SuiteResult:
        try:
            manifest = self.suite_loader(key)
        except (SuiteNotFoundError, ImportError, AttributeError) as e:
            log.error("Could not load suite %s: %s", key, e)
            return SuiteResult(
                suite_name=key,
                case_results=(
                    TestCaseResult(
                        case_name="load suite", outcome=Outcome.FAIL, message=str(e)
                    ),
                ),
            )

        context = CaseContext(
            runtime=self.runtime, http=self.http, ports=self.ports, config=self.config
        )
        runner = manifest.runner(case_timeout=self.config.case_timeout)
        return await runner.run(context)

    def _report(self, builder: RunReportBuilder) -> RunReport:
        self._enter(Phase.REPORTING)
        report = builder.freeze(self.clock())
        log_run_summary(log, report)
        if self.results_dir is not None:
            try:
                path = write_report(report, self.results_dir)
            except OSError as e:
                log.error("Could not write report to %s: %s", self.results_dir, e)
            else:
                log.info("Report written to %s", path)
        return report

    def _interrupted(self, builder: RunReportBuilder) -> None:
        log.warning("Run interrupted during %s, cleaning up", self.phase)
        task = asyncio.current_task()
        if task is not None:
            task.uncancel()
        builder.fail(ExitStatus.INTERRUPTED, self.phase, "interrupted")

    def _enter(self, phase: Phase) -> None:
        log.info("Phase: %s -> %s", self.phase, phase)
        self.phase = phase
