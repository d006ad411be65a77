"""Execute one suite of test cases in declaration order."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, MutableMapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from compose_test_harness.errors import CaseSkipped
from compose_test_harness.http import HttpClient
from compose_test_harness.models.config import HarnessConfig
from compose_test_harness.models.result import Outcome, SuiteResult, TestCaseResult
from compose_test_harness.probes.port import PortProbe
from compose_test_harness.runtime.base import ContainerRuntime

log = logging.getLogger(__name__)

OUTCOME_SYMBOLS = {
    Outcome.PASS: "✓",
    Outcome.FAIL: "✗",
    Outcome.SKIP: "↷",
}


@dataclass(frozen=True, kw_only=True)
class CaseContext:
    """Collaborators available to every test case.

    ``state`` is shared by the cases of one suite so a later case can read
    what an earlier case produced.
    """

    runtime: ContainerRuntime
    http: HttpClient
    ports: PortProbe
    config: HarnessConfig
    state: MutableMapping[str, Any] = field(default_factory=dict)


CaseFunc: TypeAlias = Callable[[CaseContext], Awaitable[None]]


@dataclass(frozen=True, kw_only=True)
class TestCase:
    """A named check; passes by returning, fails or skips by raising."""

    __test__ = False

    name: str
    func: CaseFunc


@dataclass(frozen=True, kw_only=True)
class TestSuiteRunner:
    """Runs the cases of a single suite and collects their outcomes."""

    __test__ = False

    name: str
    cases: Sequence[TestCase]
    case_timeout: float = 60.0

    async def run(self, context: CaseContext) -> SuiteResult:
        """Run every case strictly in order; no case can abort the suite."""
        log.info("=" * 60)
        log.info("%s Suite (%d case(s))", self.name, len(self.cases))
        log.info("=" * 60)

        results = [await self._run_case(case, context) for case in self.cases]
        suite = SuiteResult(suite_name=self.name, case_results=tuple(results))

        log.info(
            "%s: %d passed, %d failed, %d skipped",
            self.name,
            suite.passed,
            suite.failed,
            suite.skipped,
        )
        return suite

    async def _run_case(self, case: TestCase, context: CaseContext) -> TestCaseResult:
        loop = asyncio.get_running_loop()
        start = loop.time()
        log.debug("Running: %s", case.name)

        case_deadline = asyncio.timeout(self.case_timeout)
        try:
            async with case_deadline:
                await case.func(context)
        except CaseSkipped as e:
            outcome, message = Outcome.SKIP, str(e) or None
        except AssertionError as e:
            outcome, message = Outcome.FAIL, str(e) or "assertion failed"
        except TimeoutError as e:
            if case_deadline.expired():
                message = f"timed out after {self.case_timeout:.0f}s"
            else:
                message = f"TimeoutError: {e}" if str(e) else "TimeoutError"
            outcome = Outcome.FAIL
        except Exception as e:
            log.error("Case %r raised unexpectedly", case.name, exc_info=e)
            outcome, message = Outcome.FAIL, f"{type(e).__name__}: {e}"
        else:
            outcome, message = Outcome.PASS, None

        result = TestCaseResult(
            case_name=case.name,
            outcome=outcome,
            message=message,
            duration=loop.time() - start,
        )
        if message:
            log.info("%s %s: %s", OUTCOME_SYMBOLS[outcome], case.name, message)
        else:
            log.info("%s %s", OUTCOME_SYMBOLS[outcome], case.name)
        return result
