"""Lifecycle runner driving a single test case from start to finish."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from case_runner.bus import MessageBus
from case_runner.cancellation import CancellationSignal
from case_runner.config import RunnerConfig
from case_runner.context import ExecutionContext
from case_runner.faults import flatten_fault
from case_runner.models.messages import (
    ErrorMessage,
    TestCaseCleanupFailure,
    TestCaseFinished,
    TestCaseStarting,
)
from case_runner.models.summary import RunSummary
from case_runner.models.test_case import TestCase

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class TestCaseRunner[TestCaseT: TestCase](ABC):
    """Runs one test case through its lifecycle.

    Subclasses supply ``run_test_case``, which executes the test case body.
    The starting, finished and cleanup failure hooks publish their lifecycle
    message by default and can be overridden independently. Every hook returns
    a continue-value: False requests cancellation through the shared signal.

    The runner keeps no per-run state. Everything mutable lives in the
    ``ExecutionContext``, so one runner may drive many runs concurrently.
    """

    __test__ = False

    @abstractmethod
    async def run_test_case(
        self,
        ctxt: ExecutionContext[TestCaseT],
        exception: Exception | None,
    ) -> RunSummary:
        """Execute the test case body.

        Args:
            ctxt: Context of the current run
            exception: Fault raised while starting the test case. When set, it
                must be reported as a failure of the test case.

        Returns:
            Summary of the execution

        """

    async def on_test_case_starting(self, ctxt: ExecutionContext[TestCaseT]) -> bool:
        """Publish the starting message for the test case."""
        return ctxt.message_bus.publish(TestCaseStarting.from_test_case(ctxt.test_case))

    async def on_test_case_finished(
        self,
        ctxt: ExecutionContext[TestCaseT],
        summary: RunSummary,
    ) -> bool:
        """Publish the finished message for the test case."""
        return ctxt.message_bus.publish(
            TestCaseFinished.from_summary(ctxt.test_case, summary)
        )

    async def on_test_case_cleanup_failure(
        self,
        ctxt: ExecutionContext[TestCaseT],
        exception: Exception,
    ) -> bool:
        """Publish a cleanup failure message for faults left after finishing."""
        fault = flatten_fault(exception, follow_causes=ctxt.follow_exception_causes)
        return ctxt.message_bus.publish(
            TestCaseCleanupFailure.from_fault(ctxt.test_case, fault)
        )

    def create_context(
        self,
        test_case: TestCaseT,
        *,
        message_bus: MessageBus,
        cancellation: CancellationSignal,
        config: RunnerConfig,
    ) -> ExecutionContext[TestCaseT]:
        """Create the context for a run. Override to use a custom context type."""
        return ExecutionContext(
            test_case=test_case,
            message_bus=message_bus,
            cancellation=cancellation,
            explicit_option=config.explicit_option,
            follow_exception_causes=config.follow_exception_causes,
        )

    async def execute(
        self,
        test_case: TestCaseT,
        *,
        message_bus: MessageBus,
        cancellation: CancellationSignal | None = None,
        config: RunnerConfig | None = None,
    ) -> RunSummary:
        """Run a test case inside a freshly created context.

        The context is initialized before the run and disposed afterwards,
        including when the run raises.

        Args:
            test_case: Test case to run
            message_bus: Bus receiving the lifecycle messages
            cancellation: Signal shared with the caller (default: a new one)
            config: Run configuration (default: ``RunnerConfig()``)

        Returns:
            Summary of the run

        """
        ctxt = self.create_context(
            test_case,
            message_bus=message_bus,
            cancellation=cancellation or CancellationSignal(),
            config=config or RunnerConfig(),
        )
        async with ctxt:
            return await self.run(ctxt)

    async def run(self, ctxt: ExecutionContext[TestCaseT]) -> RunSummary:
        """Drive an initialized context through the lifecycle.

        Faults raised by the starting and finished hooks are captured and never
        propagate. A fault captured while starting is handed to
        ``run_test_case``; anything still captured after finishing is reported
        through ``on_test_case_cleanup_failure``. Execution is skipped, and an
        empty summary used, when cancellation is requested before it begins.
        """
        display_name = ctxt.test_case.test_case_display_name
        log.info("Starting test case %s", display_name)

        ctxt.status = "initializing"
        log.debug("Running starting hook for %s", display_name)
        should_continue, _ = await ctxt.aggregator.guard(
            lambda: self.on_test_case_starting(ctxt), True
        )
        if not should_continue:
            log.warning("Cancellation requested while starting %s", display_name)
            ctxt.request_cancellation()

        ctxt.status = "running"
        summary = RunSummary()
        if ctxt.cancellation_requested:
            log.info("Skipping execution of %s: cancellation requested", display_name)
        else:
            exception = ctxt.aggregator.to_exception()
            ctxt.aggregator.clear()
            log.debug("Executing %s", display_name)
            summary = await self.run_test_case(ctxt, exception)

        ctxt.status = "cleaning_up"
        log.debug("Running finished hook for %s", display_name)
        should_continue, _ = await ctxt.aggregator.guard(
            lambda: self.on_test_case_finished(ctxt, summary), True
        )
        if not should_continue:
            log.warning("Cancellation requested while finishing %s", display_name)
            ctxt.request_cancellation()

        if (exception := ctxt.aggregator.to_exception()) is not None:
            log.debug("Reporting cleanup failure of %s", display_name)
            await self._report_cleanup_failure(ctxt, exception)

        log.info(
            "Finished test case %s: total=%d failed=%d skipped=%d not_run=%d "
            "time=%ss",
            display_name,
            summary.total,
            summary.failed,
            summary.skipped,
            summary.not_run,
            summary.time,
        )
        return summary

    async def _report_cleanup_failure(
        self,
        ctxt: ExecutionContext[TestCaseT],
        exception: Exception,
    ) -> None:
        """Report leftover faults, falling back to an error message if that fails."""
        try:
            should_continue = await self.on_test_case_cleanup_failure(ctxt, exception)
        except Exception as e:
            log.error(
                "Cleanup failure reporting raised for %s",
                ctxt.test_case.test_case_display_name,
                exc_info=e,
            )
            self._publish_error(ctxt, e)
            return

        if not should_continue:
            log.warning(
                "Cancellation requested while reporting cleanup failure of %s",
                ctxt.test_case.test_case_display_name,
            )
            ctxt.request_cancellation()

    def _publish_error(
        self,
        ctxt: ExecutionContext[TestCaseT],
        exception: Exception,
    ) -> None:
        fault = flatten_fault(exception, follow_causes=ctxt.follow_exception_causes)
        try:
            ctxt.message_bus.publish(ErrorMessage.from_fault(ctxt.test_case, fault))
        except Exception:
            log.exception(
                "Could not publish error message for %s",
                ctxt.test_case.test_case_display_name,
            )
