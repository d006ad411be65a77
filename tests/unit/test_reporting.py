"""Tests for run summaries and JSON reports."""

import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from compose_test_harness.models.result import (
    ExitStatus,
    Outcome,
    ReadinessResult,
    RunReport,
    SuiteResult,
    TestCaseResult,
)
from compose_test_harness.reporting import format_report, log_run_summary, write_report

STARTED = datetime(2026, 3, 1, 12, 30, 5, tzinfo=UTC)


@pytest.fixture
def report() -> RunReport:
    """Create a report with one failing suite and a skipped readiness check."""
    return RunReport(
        suite_results=(
            SuiteResult(
                suite_name="API Tests",
                case_results=(
                    TestCaseResult(case_name="health", outcome=Outcome.PASS),
                    TestCaseResult(
                        case_name="auth", outcome=Outcome.FAIL, message="HTTP 500"
                    ),
                    TestCaseResult(
                        case_name="metrics",
                        outcome=Outcome.SKIP,
                        message="metrics disabled",
                    ),
                ),
            ),
        ),
        readiness=(
            ReadinessResult(service_name="PostgreSQL", ready=True, elapsed=2.5),
            ReadinessResult.not_checked("Nginx", mandatory=False),
        ),
        started_at=STARTED,
        finished_at=STARTED + timedelta(seconds=42),
        status=ExitStatus.TEST_FAILURE,
        failed_phase="testing",
        failure_reason="1 test case(s) failed",
    )


def test_log_run_summary(report: RunReport, caplog: pytest.LogCaptureFixture) -> None:
    """The summary lists readiness, suite counts, totals and the failure."""
    log = logging.getLogger("test_reporting")
    with caplog.at_level(logging.INFO):
        log_run_summary(log, report)

    assert "✓ PostgreSQL ready (2.5s)" in caplog.text
    assert "↷ Nginx: not checked" in caplog.text
    assert "✗ API Tests: 1 passed, 1 failed, 1 skipped" in caplog.text
    assert "auth: HTTP 500" in caplog.text
    assert "Total: 3  Passed: 1  Failed: 1  Skipped: 1" in caplog.text
    assert "Duration: 42.0s" in caplog.text
    assert "Run failed in phase testing: 1 test case(s) failed (exit code 1)" in (
        caplog.text
    )


def test_log_run_summary_success(caplog: pytest.LogCaptureFixture) -> None:
    report = RunReport(
        suite_results=(),
        readiness=(),
        started_at=STARTED,
        finished_at=STARTED,
        status=ExitStatus.SUCCESS,
    )
    with caplog.at_level(logging.INFO):
        log_run_summary(logging.getLogger("test_reporting"), report)

    assert "✓ All tests passed" in caplog.text
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


def test_format_report(report: RunReport) -> None:
    data = format_report(report)

    assert data["status"] == "test_failure"
    assert data["exit_code"] == 1
    assert data["duration"] == 42.0
    assert data["started_at"] == "2026-03-01T12:30:05+00:00"
    assert data["totals"] == {"passed": 1, "failed": 1, "skipped": 1, "total": 3}
    assert data["readiness"][1] == {
        "service": "Nginx",
        "ready": False,
        "checked": False,
        "mandatory": False,
        "elapsed": 0.0,
        "last_error": "not checked",
    }
    (suite,) = data["suites"]
    assert [case["outcome"] for case in suite["cases"]] == ["pass", "fail", "skip"]


def test_write_report(report: RunReport, tmp_path: Path) -> None:
    """The report is written as JSON named after the start time."""
    path = write_report(report, tmp_path / "results")

    assert path == tmp_path / "results" / "run-report-20260301-123005.json"
    assert json.loads(path.read_text()) == format_report(report)
