"""Human summary and JSON artifact for a finished run."""

import json
import logging
from pathlib import Path
from typing import Any

from compose_test_harness.models.result import ExitStatus, RunReport
from compose_test_harness.suites.runner import OUTCOME_SYMBOLS

STATUS_SYMBOLS = {
    True: "✓",
    False: "✗",
}


def log_run_summary(log: logging.Logger, report: RunReport) -> None:
    """Log every suite's counts, the elapsed time and any aborting failure."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for readiness in report.readiness:
        if not readiness.checked:
            log.info("↷ %s: not checked", readiness.service_name)
        elif readiness.ready:
            log.info("✓ %s ready (%.1fs)", readiness.service_name, readiness.elapsed)
        else:
            log.info("✗ %s: %s", readiness.service_name, readiness.last_error)

    for suite in report.suite_results:
        log.info(
            "%s %s: %d passed, %d failed, %d skipped",
            STATUS_SYMBOLS[suite.ok],
            suite.suite_name,
            suite.passed,
            suite.failed,
            suite.skipped,
        )
        for case in suite.case_results:
            if case.message:
                log.info(
                    "  %s %s: %s",
                    OUTCOME_SYMBOLS[case.outcome],
                    case.case_name,
                    case.message,
                )

    log.info("-" * 80)
    log.info(
        "Total: %d  Passed: %d  Failed: %d  Skipped: %d",
        report.total,
        report.passed,
        report.failed,
        report.skipped,
    )
    log.info("Duration: %.1fs", report.duration)

    if report.status is ExitStatus.SUCCESS:
        log.info("✓ All tests passed")
    else:
        log.error(
            "✗ Run failed in phase %s: %s (exit code %d)",
            report.failed_phase,
            report.failure_reason,
            report.status,
        )


def format_report(report: RunReport) -> dict[str, Any]:
    """Format a run report for JSON output."""
    return {
        "status": report.status.name.lower(),
        "exit_code": int(report.status),
        "failed_phase": report.failed_phase,
        "failure_reason": report.failure_reason,
        "started_at": report.started_at.isoformat(),
        "finished_at": report.finished_at.isoformat(),
        "duration": report.duration,
        "readiness": [
            {
                "service": result.service_name,
                "ready": result.ready,
                "checked": result.checked,
                "mandatory": result.mandatory,
                "elapsed": result.elapsed,
                "last_error": result.last_error,
            }
            for result in report.readiness
        ],
        "suites": [
            {
                "name": suite.suite_name,
                "passed": suite.passed,
                "failed": suite.failed,
                "skipped": suite.skipped,
                "total": suite.total,
                "cases": [
                    {
                        "name": case.case_name,
                        "outcome": str(case.outcome),
                        "message": case.message,
                        "duration": case.duration,
                    }
                    for case in suite.case_results
                ],
            }
            for suite in report.suite_results
        ],
        "totals": {
            "passed": report.passed,
            "failed": report.failed,
            "skipped": report.skipped,
            "total": report.total,
        },
    }


def write_report(report: RunReport, results_dir: Path) -> Path:
    """Write the JSON report into ``results_dir`` and return its path."""
    results_dir.mkdir(parents=True, exist_ok=True)
    timestamp = report.started_at.strftime("%Y%m%d-%H%M%S")
    path = results_dir / f"run-report-{timestamp}.json"
    path.write_text(json.dumps(format_report(report), indent=2))
    return path
