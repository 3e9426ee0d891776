"""Per-run execution context."""

import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from dataclasses import dataclass, field
from types import TracebackType
from typing import Literal, Self

from case_runner.bus import MessageBus
from case_runner.cancellation import CancellationSignal
from case_runner.faults import FaultAggregator
from case_runner.models.test_case import ExplicitOption, TestCase

log = logging.getLogger(__name__)

EngineStatus = Literal["initializing", "running", "cleaning_up"]


class ContextStateError(Exception):
    """Raised when an execution context is used out of lifecycle order."""


@dataclass(kw_only=True)
class ExecutionContext[TestCaseT: TestCase]:
    """State of a single test case run.

    The context exclusively owns its fault aggregator. The message bus and the
    cancellation signal are borrowed from the caller and outlive the context.

    ``initialize`` must be awaited exactly once before use. ``dispose`` releases
    every resource registered on the context. Using the context with
    ``async with`` does both and disposes on every exit path.
    """

    test_case: TestCaseT
    message_bus: MessageBus
    cancellation: CancellationSignal
    explicit_option: ExplicitOption = "off"
    aggregator: FaultAggregator = field(default_factory=FaultAggregator)
    follow_exception_causes: bool = True
    status: EngineStatus | None = field(default=None, init=False)

    _exit_stack: AsyncExitStack | None = field(default=None, init=False, repr=False)
    _disposed: bool = field(default=False, init=False, repr=False)

    @property
    def cancellation_requested(self) -> bool:
        """Whether the shared cancellation signal is set."""
        return self.cancellation.requested

    def request_cancellation(self) -> None:
        """Set the shared cancellation signal."""
        self.cancellation.request()

    async def initialize(self) -> None:
        """Prepare the context for use.

        Subclasses acquiring resources should call this first and register
        their cleanup with ``enter_async_context`` or ``push_async_callback``.

        Raises:
            ContextStateError: If the context was already initialized or
                disposed

        """
        if self._disposed:
            raise ContextStateError("Execution context is already disposed")
        if self._exit_stack is not None:
            raise ContextStateError("Execution context is already initialized")

        log.debug(
            "Initializing context for test case %s",
            self.test_case.test_case_unique_id,
        )
        self._exit_stack = AsyncExitStack()

    async def enter_async_context[T](self, cm: AbstractAsyncContextManager[T]) -> T:
        """Enter an async context manager that exits when the context is disposed."""
        return await self._require_exit_stack().enter_async_context(cm)

    def push_async_callback(self, callback: Callable[[], Awaitable[object]]) -> None:
        """Register a coroutine function awaited when the context is disposed."""
        self._require_exit_stack().push_async_callback(callback)

    async def dispose(self) -> None:
        """Release every registered resource. Later calls do nothing.

        Disposing a context that was never initialized retires it without
        releasing anything.
        """
        if self._disposed:
            return

        self._disposed = True
        if self._exit_stack is None:
            return

        log.debug(
            "Disposing context for test case %s",
            self.test_case.test_case_unique_id,
        )
        await self._exit_stack.aclose()

    def _require_exit_stack(self) -> AsyncExitStack:
        if self._disposed:
            raise ContextStateError("Execution context is already disposed")
        if self._exit_stack is None:
            raise ContextStateError("Execution context is not initialized")
        return self._exit_stack

    async def __aenter__(self) -> Self:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.dispose()
