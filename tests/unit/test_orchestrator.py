"""Tests for the run orchestrator."""

import asyncio
import json
import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import TypeAlias
from unittest.mock import Mock, patch

import pytest

from compose_test_harness.config_loader import default_harness_config
from compose_test_harness.errors import CaseFailure
from compose_test_harness.http import HttpClient
from compose_test_harness.models.config import HarnessConfig
from compose_test_harness.models.result import ExitStatus, Outcome, ReadinessResult
from compose_test_harness.orchestrator import Orchestrator, Phase
from compose_test_harness.probes.port import PortProbe
from compose_test_harness.readiness.sequencer import (
    ReadinessOutcome,
    ReadinessSequencer,
)
from compose_test_harness.runtime.base import ContainerRuntime
from compose_test_harness.suites.loading import SuiteNotFoundError
from compose_test_harness.suites.manifest import SuiteManifest
from compose_test_harness.suites.runner import CaseContext, TestCase
from compose_test_harness.testing.factories import ReadinessResultFactory


@pytest.fixture(autouse=True)
def tools_on_path() -> Iterator[Mock]:
    """Pretend every required tool is installed."""
    with patch(
        "compose_test_harness.prerequisites.shutil.which",
        return_value="/usr/bin/docker",
    ) as which:
        yield which


@pytest.fixture
def config(tmp_path: Path) -> HarnessConfig:
    """Create config over a project dir holding both compose files."""
    (tmp_path / "docker-compose.yml").write_text("services: {}\n")
    (tmp_path / "docker-compose.dev.yml").write_text("services: {}\n")
    return default_harness_config(tmp_path)


@pytest.fixture
def runtime_mock() -> Mock:
    """Create mock runtime whose group operations succeed."""
    runtime = Mock(spec=ContainerRuntime)
    runtime.compose_available.return_value = True
    runtime.validate_config.return_value = True
    runtime.build_group.return_value = True
    runtime.start_group.return_value = True
    runtime.stop_group.return_value = True
    return runtime


@pytest.fixture
def ports_mock() -> Mock:
    """Create mock port probe with every host port free."""
    ports = Mock(spec=PortProbe)
    ports.is_open.return_value = False
    return ports


@pytest.fixture
def sequencer_mock() -> Mock:
    """Create mock sequencer reporting all services ready."""
    sequencer = Mock(spec=ReadinessSequencer)
    sequencer.wait_for_all.return_value = ReadinessOutcome(
        results=[
            ReadinessResultFactory.build(service_name="PostgreSQL", elapsed=1.0)
        ],
        success=True,
    )
    return sequencer


async def _passes(context: CaseContext) -> None:
    pass


async def _fails(context: CaseContext) -> None:
    raise CaseFailure("nope")


def passing_loader(loaded: list[str] | None = None) -> Callable[[str], SuiteManifest]:
    def load(key: str) -> SuiteManifest:
        if loaded is not None:
            loaded.append(key)
        return SuiteManifest(
            key=key, title=key, cases=(TestCase(name=f"{key} ok", func=_passes),)
        )

    return load


@pytest.fixture
def make_orchestrator(
    runtime_mock: Mock,
    ports_mock: Mock,
    sequencer_mock: Mock,
    config: HarnessConfig,
) -> Callable[..., Orchestrator]:
    """Return a function creating orchestrators over the mocks."""

    def _make(**kwargs: object) -> Orchestrator:
        kwargs.setdefault("suite_loader", passing_loader())
        return Orchestrator(
            runtime=runtime_mock,
            http=Mock(spec=HttpClient),
            ports=ports_mock,
            config=config,
            sequencer=sequencer_mock,
            **kwargs,  # type: ignore[arg-type]
        )

    return _make


async def test_successful_run(
    make_orchestrator: Callable[..., Orchestrator], runtime_mock: Mock
) -> None:
    """All phases pass and every suite runs in order."""
    loaded: list[str] = []
    orchestrator = make_orchestrator(suite_loader=passing_loader(loaded))

    report = await orchestrator.run()

    assert report.status is ExitStatus.SUCCESS
    assert loaded == ["build", "services", "api", "websocket", "integration", "cleanup"]
    assert [s.suite_name for s in report.suite_results] == loaded
    assert report.readiness[0].service_name == "PostgreSQL"
    assert orchestrator.phase is Phase.DONE
    runtime_mock.build_group.assert_awaited_once()
    runtime_mock.start_group.assert_awaited_once()
    runtime_mock.stop_group.assert_awaited_once_with()


async def test_quick_mode_selects_three_suites(
    make_orchestrator: Callable[..., Orchestrator],
) -> None:
    """Quick mode runs build, services and api only."""
    loaded: list[str] = []
    orchestrator = make_orchestrator(quick=True, suite_loader=passing_loader(loaded))

    report = await orchestrator.run()

    assert loaded == ["build", "services", "api"]
    names = {s.suite_name for s in report.suite_results}
    assert names == {"build", "services", "api"}
    assert names.isdisjoint({"websocket", "integration", "cleanup"})


async def test_failing_suite_does_not_stop_later_suites(
    make_orchestrator: Callable[..., Orchestrator],
) -> None:
    """Every suite runs and failures become TEST_FAILURE."""

    def load(key: str) -> SuiteManifest:
        func = _fails if key == "services" else _passes
        return SuiteManifest(key=key, title=key, cases=(TestCase(name="c", func=func),))

    report = await make_orchestrator(suite_loader=load).run()

    assert report.status is ExitStatus.TEST_FAILURE
    assert report.failed_phase == "testing"
    assert len(report.suite_results) == 6
    assert report.failed == 1


async def test_unloadable_suite_is_reported_as_failed_case(
    make_orchestrator: Callable[..., Orchestrator],
) -> None:
    """A suite that cannot load yields a single failed case."""

    def load(key: str) -> SuiteManifest:
        if key == "websocket":
            raise SuiteNotFoundError("Suite 'websocket' not found")
        return passing_loader()(key)

    report = await make_orchestrator(suite_loader=load).run()

    websocket = next(s for s in report.suite_results if s.suite_name == "websocket")
    assert [(c.case_name, c.outcome) for c in websocket.case_results] == [
        ("load suite", Outcome.FAIL)
    ]
    assert report.status is ExitStatus.TEST_FAILURE


Injection: TypeAlias = Callable[[Mock, Mock, Mock, Mock], None]


def _missing_docker(runtime: Mock, ports: Mock, seq: Mock, which: Mock) -> None:
    which.return_value = None


def _missing_compose(runtime: Mock, ports: Mock, seq: Mock, which: Mock) -> None:
    runtime.compose_available.return_value = False


def _invalid_config(runtime: Mock, ports: Mock, seq: Mock, which: Mock) -> None:
    runtime.validate_config.return_value = False


def _ports_in_use(runtime: Mock, ports: Mock, seq: Mock, which: Mock) -> None:
    ports.is_open.return_value = True


def _build_fails(runtime: Mock, ports: Mock, seq: Mock, which: Mock) -> None:
    runtime.build_group.return_value = False


def _start_fails(runtime: Mock, ports: Mock, seq: Mock, which: Mock) -> None:
    runtime.start_group.return_value = False


def _start_crashes(runtime: Mock, ports: Mock, seq: Mock, which: Mock) -> None:
    runtime.start_group.side_effect = OSError("docker socket gone")


def _not_ready(runtime: Mock, ports: Mock, seq: Mock, which: Mock) -> None:
    seq.wait_for_all.return_value = ReadinessOutcome(
        results=[
            ReadinessResult(
                service_name="PostgreSQL", ready=False, last_error="timed out"
            ),
            ReadinessResult.not_checked("Redis", mandatory=True),
        ],
        success=False,
    )


@pytest.mark.parametrize(
    ("inject", "status", "phase"),
    [
        (_missing_docker, ExitStatus.MISSING_TOOL, Phase.PREREQ_CHECK),
        (_missing_compose, ExitStatus.MISSING_TOOL, Phase.PREREQ_CHECK),
        (_invalid_config, ExitStatus.CONFIG_ERROR, Phase.PREREQ_CHECK),
        (_ports_in_use, ExitStatus.CONFIG_ERROR, Phase.PREREQ_CHECK),
        (_build_fails, ExitStatus.BUILD_FAILURE, Phase.BUILDING),
        (_start_fails, ExitStatus.STARTUP_FAILURE, Phase.STARTING),
        (_start_crashes, ExitStatus.STARTUP_FAILURE, Phase.STARTING),
        (_not_ready, ExitStatus.READINESS_FAILURE, Phase.AWAITING_READY),
    ],
)
async def test_cleanup_runs_exactly_once_on_every_failure(
    make_orchestrator: Callable[..., Orchestrator],
    runtime_mock: Mock,
    ports_mock: Mock,
    sequencer_mock: Mock,
    tools_on_path: Mock,
    inject: Injection,
    status: ExitStatus,
    phase: Phase,
) -> None:
    """A failure in any phase still cleans up, exactly once."""
    inject(runtime_mock, ports_mock, sequencer_mock, tools_on_path)
    orchestrator = make_orchestrator()

    report = await orchestrator.run()
    await orchestrator.cleanup()

    assert report.status is status
    assert report.failed_phase == phase
    assert report.failure_reason
    assert report.suite_results == ()
    runtime_mock.stop_group.assert_awaited_once_with()


async def test_readiness_failure_names_the_service(
    make_orchestrator: Callable[..., Orchestrator],
    runtime_mock: Mock,
    ports_mock: Mock,
    sequencer_mock: Mock,
    tools_on_path: Mock,
) -> None:
    """The failure reason carries the service and its last error."""
    _not_ready(runtime_mock, ports_mock, sequencer_mock, tools_on_path)

    report = await make_orchestrator().run()

    assert report.failure_reason == "PostgreSQL not ready: timed out"
    assert [r.checked for r in report.readiness] == [True, False]


async def test_keep_skips_cleanup(
    make_orchestrator: Callable[..., Orchestrator], runtime_mock: Mock
) -> None:
    """--keep leaves the containers running."""
    await make_orchestrator(keep=True).run()

    runtime_mock.stop_group.assert_not_called()


async def test_clean_runs_before_port_check(
    make_orchestrator: Callable[..., Orchestrator],
    runtime_mock: Mock,
    ports_mock: Mock,
) -> None:
    """--clean removes old containers and volumes before ports are checked."""
    calls: list[str] = []
    runtime_mock.stop_group.side_effect = lambda **kw: calls.append(f"stop {kw}")
    ports_mock.is_open.side_effect = lambda host, port: calls.append("port") or False

    await make_orchestrator(clean=True).run()

    assert calls[0] == "stop {'remove_volumes': True}"
    assert "port" in calls[1:]
    assert calls[-1] == "stop {}"


async def test_cleanup_errors_are_logged_not_raised(
    make_orchestrator: Callable[..., Orchestrator],
    runtime_mock: Mock,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A failing teardown does not change the outcome."""
    runtime_mock.stop_group.side_effect = RuntimeError("compose down failed")

    report = await make_orchestrator().run()

    assert report.status is ExitStatus.SUCCESS
    assert "Cleanup failed: compose down failed" in caplog.text


async def test_interrupt_jumps_to_cleanup(
    make_orchestrator: Callable[..., Orchestrator], runtime_mock: Mock
) -> None:
    """Cancelling the run still cleans up and reports INTERRUPTED."""
    building = asyncio.Event()

    async def slow_build() -> bool:
        building.set()
        await asyncio.sleep(60)
        return True

    runtime_mock.build_group.side_effect = slow_build
    orchestrator = make_orchestrator()

    task = asyncio.create_task(orchestrator.run())
    await building.wait()
    task.cancel()
    report = await task

    assert report.status is ExitStatus.INTERRUPTED
    assert report.failed_phase == Phase.BUILDING
    runtime_mock.start_group.assert_not_called()
    runtime_mock.stop_group.assert_awaited_once_with()


async def test_summary_logged_before_cleanup(
    make_orchestrator: Callable[..., Orchestrator],
    caplog: pytest.LogCaptureFixture,
) -> None:
    """The human summary precedes container teardown."""
    with caplog.at_level(logging.INFO):
        await make_orchestrator().run()

    messages = [record.getMessage() for record in caplog.records]
    summary = messages.index("Test Results Summary:")
    stopping = messages.index("Stopping containers...")
    assert summary < stopping


async def test_report_written_to_results_dir(
    make_orchestrator: Callable[..., Orchestrator], tmp_path: Path
) -> None:
    """The JSON artifact lands in the results directory."""
    results_dir = tmp_path / "results"

    report = await make_orchestrator(results_dir=results_dir).run()

    (artifact,) = results_dir.glob("run-report-*.json")
    data = json.loads(artifact.read_text())
    assert data["exit_code"] == 0
    assert data["totals"]["total"] == report.total == 6
