"""Suite manifest definition for the plugin system."""

from collections.abc import Sequence
from dataclasses import dataclass

from compose_test_harness.suites.runner import TestCase, TestSuiteRunner


@dataclass(frozen=True, kw_only=True)
class SuiteManifest:
    """Manifest describing a test suite plugin.

    The manifest names the suite and lists its cases in the order they
    must run; the orchestrator turns it into a transient runner per run.
    """

    key: str
    title: str
    cases: Sequence[TestCase]

    def runner(self, case_timeout: float = 60.0) -> TestSuiteRunner:
        """Create a runner for this suite."""
        return TestSuiteRunner(
            name=self.title, cases=self.cases, case_timeout=case_timeout
        )
