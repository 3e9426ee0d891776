"""Tests for the execution context."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import pytest

from case_runner.cancellation import CancellationSignal
from case_runner.context import ContextStateError, ExecutionContext
from case_runner.models.test_case import TestCase
from case_runner.testing.factories import TestCaseFactory
from case_runner.testing.spies import RecordingMessageBus


@pytest.fixture
def cancellation() -> CancellationSignal:
    """Create a fresh cancellation signal."""
    return CancellationSignal()


@pytest.fixture
def context(cancellation: CancellationSignal) -> ExecutionContext[TestCase]:
    """Create an uninitialized execution context."""
    return ExecutionContext(
        test_case=TestCaseFactory.build(),
        message_bus=RecordingMessageBus(),
        cancellation=cancellation,
    )


async def test_initialize_twice_raises(context: ExecutionContext[TestCase]) -> None:
    """Initializing an already initialized context raises."""
    await context.initialize()

    with pytest.raises(ContextStateError, match="already initialized"):
        await context.initialize()


async def test_registering_before_initialize_raises(
    context: ExecutionContext[TestCase],
) -> None:
    """Resources cannot be registered before initialization."""

    async def callback() -> None:  # pragma: no cover
        pass

    with pytest.raises(ContextStateError, match="not initialized"):
        context.push_async_callback(callback)


async def test_registering_after_dispose_raises(
    context: ExecutionContext[TestCase],
) -> None:
    """Resources cannot be registered after disposal."""

    async def callback() -> None:  # pragma: no cover
        pass

    await context.initialize()
    await context.dispose()

    with pytest.raises(ContextStateError, match="already disposed"):
        context.push_async_callback(callback)


async def test_dispose_runs_callbacks_once(
    context: ExecutionContext[TestCase],
) -> None:
    """Disposing releases resources exactly once."""
    calls: list[str] = []

    async def callback() -> None:
        calls.append("released")

    await context.initialize()
    context.push_async_callback(callback)
    await context.dispose()
    await context.dispose()

    assert calls == ["released"]


async def test_dispose_without_initialize_retires_the_context(
    context: ExecutionContext[TestCase],
) -> None:
    """A context disposed before initialization cannot be initialized."""
    await context.dispose()
    await context.dispose()

    with pytest.raises(ContextStateError, match="already disposed"):
        await context.initialize()


async def test_initialize_after_dispose_raises(
    context: ExecutionContext[TestCase],
) -> None:
    """A disposed context cannot be initialized again."""
    await context.initialize()
    await context.dispose()

    with pytest.raises(ContextStateError, match="already disposed"):
        await context.initialize()


async def test_async_with_disposes_on_error(
    context: ExecutionContext[TestCase],
) -> None:
    """Resources are released when the body raises."""
    events: list[str] = []

    @asynccontextmanager
    async def resource() -> AsyncGenerator[str]:
        events.append("acquired")
        try:
            yield "handle"
        finally:
            events.append("released")

    with pytest.raises(RuntimeError, match="run failed"):
        async with context as ctxt:
            handle = await ctxt.enter_async_context(resource())
            assert handle == "handle"
            raise RuntimeError("run failed")

    assert events == ["acquired", "released"]


async def test_cancellation_is_shared_with_caller(
    context: ExecutionContext[TestCase],
    cancellation: CancellationSignal,
) -> None:
    """Requesting cancellation through the context sets the caller's signal."""
    assert not context.cancellation_requested

    context.request_cancellation()

    assert context.cancellation_requested
    assert cancellation.requested


def test_each_context_owns_its_aggregator(cancellation: CancellationSignal) -> None:
    """Contexts do not share fault aggregators by default."""
    bus = RecordingMessageBus()
    first = ExecutionContext(
        test_case=TestCaseFactory.build(), message_bus=bus, cancellation=cancellation
    )
    second = ExecutionContext(
        test_case=TestCaseFactory.build(), message_bus=bus, cancellation=cancellation
    )

    first.aggregator.capture(ValueError("boom"))

    assert first.aggregator is not second.aggregator
    assert not second.aggregator.has_faults


def test_status_starts_unset(context: ExecutionContext[TestCase]) -> None:
    """No engine status is set until a runner drives the context."""
    assert context.status is None
    assert context.explicit_option == "off"
