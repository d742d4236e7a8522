"""Run test suites one case at a time against a cluster."""

import asyncio
import logging
from dataclasses import dataclass

from kubectl_probe.assertions import DEFAULT_ASSERT_TIMEOUT, ReachabilityAsserter
from kubectl_probe.cluster.client import KubernetesClient
from kubectl_probe.errors import ProbeError
from kubectl_probe.injector import InjectedProbeHandle, ProbeInjector
from kubectl_probe.models.result import CaseResult, CaseStatus, SuiteResult
from kubectl_probe.models.suite import TestCase, TestSuite
from kubectl_probe.resolver import ResolvedTarget, TargetResolver
from kubectl_probe.watcher import DEFAULT_WATCH_TIMEOUT, ReadinessWatcher

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class TestSuiteRunner:
    """Runs each case through resolve, inject, wait and assert.

    A failing case never stops the suite; every case is run and reported.
    """

    __test__ = False

    resolver: TargetResolver
    injector: ProbeInjector
    watcher: ReadinessWatcher
    asserter: ReachabilityAsserter

    @classmethod
    def from_client(
        cls,
        client: KubernetesClient,
        probe_image: str,
        *,
        watch_timeout: float = DEFAULT_WATCH_TIMEOUT,
        assert_timeout: float = DEFAULT_ASSERT_TIMEOUT,
    ) -> "TestSuiteRunner":
        """Build a runner whose stages share one API client."""
        return cls(
            resolver=TargetResolver(client=client),
            injector=ProbeInjector(client=client, image=probe_image),
            watcher=ReadinessWatcher(client=client, timeout=watch_timeout),
            asserter=ReachabilityAsserter(client=client, timeout=assert_timeout),
        )

    async def run(self, suite: TestSuite) -> SuiteResult:
        """Run every case in declaration order."""
        if not suite.test_cases:
            log.info("No test cases provided")
            return SuiteResult(results=[])

        log.info("Running %d test case(s)...", len(suite.test_cases))
        results = [await self.run_case(case) for case in suite.test_cases]

        passed = sum(1 for result in results if result.passed)
        log.info("Suite completed: %d/%d passed", passed, len(results))
        return SuiteResult(results=results)

    async def run_case(self, case: TestCase) -> CaseResult:
        """Run a single case and capture its outcome.

        Failures of any stage become the case's result. Cancellation is not
        caught.
        """
        log.info("Running test: %s", case.description)
        loop = asyncio.get_running_loop()
        started = loop.time()
        target: ResolvedTarget | None = None
        handle: InjectedProbeHandle | None = None

        status: CaseStatus
        message: str | None = None
        try:
            target = await self.resolver.resolve(case.from_)
            handle = await self.injector.inject(target, case.to)
            await self.watcher.wait(handle)
            if case.expect == "Pass":
                await self.asserter.assert_reachable(handle)
            else:
                await self.asserter.assert_unreachable(handle)
        except ProbeError as e:
            status, message = e.status, str(e)
        except Exception as e:
            log.error("Test %r raised: %s", case.description, e, exc_info=e)
            status, message = "error", str(e)
        else:
            status = "success"

        result = CaseResult(
            description=case.description,
            status=status,
            duration=loop.time() - started,
            message=message,
            pod=str(target) if target else None,
            container=handle.container if handle else None,
        )

        if result.passed:
            log.info("Passed: %s", case.description)
        else:
            log.info("Failed: %s (%s)", case.description, message)
        return result
