"""Models for readiness checks, test execution results and run reports."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum, StrEnum


class ContainerState(StrEnum):
    """Lifecycle state of a container as seen by the harness."""

    RUNNING = "running"
    HEALTHY = "healthy"
    EXITED = "exited"
    DEAD = "dead"
    PAUSED = "paused"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        """Whether the container has stopped and will not become ready."""
        return self in {ContainerState.EXITED, ContainerState.DEAD}

    @property
    def is_up(self) -> bool:
        return self in {ContainerState.RUNNING, ContainerState.HEALTHY}


_STATE_ALIASES: dict[str, ContainerState] = {
    "running": ContainerState.RUNNING,
    "created": ContainerState.RUNNING,
    "restarting": ContainerState.RUNNING,
    "starting": ContainerState.RUNNING,
    "unhealthy": ContainerState.RUNNING,
    "healthy": ContainerState.HEALTHY,
    "exited": ContainerState.EXITED,
    "removing": ContainerState.EXITED,
    "dead": ContainerState.DEAD,
    "paused": ContainerState.PAUSED,
}


def parse_container_state(status: str, health: str | None = None) -> ContainerState:
    """Map runtime status strings onto ContainerState.

    Args:
        status: Lifecycle status (``.State.Status``), e.g. "running", "exited"
        health: Health status (``.State.Health.Status``) when the container
            defines a healthcheck, otherwise None or an empty string

    Returns:
        The parsed state; unrecognised input yields UNKNOWN.

    """
    lifecycle = _STATE_ALIASES.get(status.strip().lower(), ContainerState.UNKNOWN)
    if lifecycle is ContainerState.RUNNING and health:
        return _STATE_ALIASES.get(health.strip().lower(), ContainerState.RUNNING)
    return lifecycle


@dataclass(frozen=True, kw_only=True)
class ReadinessResult:
    """Outcome of waiting for one service to become ready."""

    service_name: str
    ready: bool
    elapsed: float = 0.0
    last_error: str | None = None
    checked: bool = True
    mandatory: bool = True

    @classmethod
    def not_checked(cls, service_name: str, *, mandatory: bool) -> "ReadinessResult":
        """Result for a service the sequencer never attempted."""
        return cls(
            service_name=service_name,
            ready=False,
            checked=False,
            mandatory=mandatory,
            last_error="not checked",
        )


class Outcome(StrEnum):
    """Outcome of a single test case."""

    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


@dataclass(frozen=True, kw_only=True)
class TestCaseResult:
    """Result of a single test case execution."""

    __test__ = False

    case_name: str
    outcome: Outcome
    message: str | None = None
    duration: float = 0.0


@dataclass(frozen=True, kw_only=True)
class SuiteResult:
    """Results of one suite; all counts derive from ``case_results``."""

    suite_name: str
    case_results: Sequence[TestCaseResult] = ()

    def _count(self, outcome: Outcome) -> int:
        return sum(1 for result in self.case_results if result.outcome is outcome)

    @property
    def passed(self) -> int:
        return self._count(Outcome.PASS)

    @property
    def failed(self) -> int:
        return self._count(Outcome.FAIL)

    @property
    def skipped(self) -> int:
        return self._count(Outcome.SKIP)

    @property
    def total(self) -> int:
        return len(self.case_results)

    @property
    def ok(self) -> bool:
        """Whether the suite had zero failed cases."""
        return self.failed == 0


class ExitStatus(IntEnum):
    """Process exit codes, distinct per reason a run failed."""

    SUCCESS = 0
    TEST_FAILURE = 1
    CONFIG_ERROR = 2
    STARTUP_FAILURE = 3
    READINESS_FAILURE = 4
    MISSING_TOOL = 5
    BUILD_FAILURE = 6
    INTERRUPTED = 130


@dataclass(frozen=True, kw_only=True)
class RunReport:
    """Frozen aggregate of a complete orchestration run."""

    suite_results: Sequence[SuiteResult]
    readiness: Sequence[ReadinessResult]
    started_at: datetime
    finished_at: datetime
    status: ExitStatus
    failed_phase: str | None = None
    failure_reason: str | None = None

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def passed(self) -> int:
        return sum(suite.passed for suite in self.suite_results)

    @property
    def failed(self) -> int:
        return sum(suite.failed for suite in self.suite_results)

    @property
    def skipped(self) -> int:
        return sum(suite.skipped for suite in self.suite_results)

    @property
    def total(self) -> int:
        return sum(suite.total for suite in self.suite_results)


@dataclass(kw_only=True)
class RunReportBuilder:
    """Mutable report owned by the orchestrator while a run is in progress."""

    started_at: datetime
    suite_results: list[SuiteResult] = field(default_factory=list)
    readiness: list[ReadinessResult] = field(default_factory=list)
    status: ExitStatus | None = None
    failed_phase: str | None = None
    failure_reason: str | None = None

    def fail(self, status: ExitStatus, phase: str, reason: str) -> None:
        """Record the first run-aborting failure; later calls are ignored."""
        if self.status is not None:
            return
        self.status = status
        self.failed_phase = phase
        self.failure_reason = reason

    def freeze(self, finished_at: datetime) -> RunReport:
        """Produce the immutable report and derive the final exit status."""
        status = self.status
        failure_reason = self.failure_reason
        failed_phase = self.failed_phase
        if status is None:
            failed = sum(suite.failed for suite in self.suite_results)
            if failed:
                status = ExitStatus.TEST_FAILURE
                failed_phase = "testing"
                failure_reason = f"{failed} test case(s) failed"
            else:
                status = ExitStatus.SUCCESS
        return RunReport(
            suite_results=tuple(self.suite_results),
            readiness=tuple(self.readiness),
            started_at=self.started_at,
            finished_at=finished_at,
            status=status,
            failed_phase=failed_phase,
            failure_reason=failure_reason,
        )
