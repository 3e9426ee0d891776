"""Fault aggregation and flattening of exception trees."""

import logging
import traceback
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

COMPOSITE_FAULT_MESSAGE = "Multiple faults were captured"


@dataclass(kw_only=True)
class FaultAggregator:
    """Collects exceptions raised by guarded operations, in capture order.

    Not thread-safe. Each run owns its own aggregator.
    """

    _faults: list[Exception] = field(default_factory=list)

    @property
    def faults(self) -> Sequence[Exception]:
        """Captured exceptions, oldest first."""
        return tuple(self._faults)

    @property
    def has_faults(self) -> bool:
        """Whether any exception has been captured since the last clear."""
        return bool(self._faults)

    def capture(self, fault: Exception) -> None:
        """Record an exception."""
        self._faults.append(fault)

    def clear(self) -> None:
        """Forget all captured exceptions."""
        self._faults.clear()

    def to_exception(self) -> Exception | None:
        """Collapse the captured exceptions into one.

        Returns:
            None when nothing was captured, the exception itself when exactly
            one was captured, or an exception group of all of them in capture
            order.

        """
        if not self._faults:
            return None
        if len(self._faults) == 1:
            return self._faults[0]
        return ExceptionGroup(COMPOSITE_FAULT_MESSAGE, self._faults)

    async def guard[T](
        self,
        operation: Callable[[], Awaitable[T]],
        default: T,
    ) -> tuple[T, Exception | None]:
        """Await an operation, capturing any exception it raises.

        Args:
            operation: Zero-argument coroutine function to run
            default: Result substituted when the operation raises

        Returns:
            The operation's result and None, or the default and the captured
            exception

        """
        try:
            return await operation(), None
        except Exception as e:
            log.warning("Captured %s: %s", type(e).__name__, e)
            self.capture(e)
            return default, e


@dataclass(frozen=True, kw_only=True)
class FlattenedFault:
    """Exception tree as four parallel sequences linked by parent index."""

    exception_types: Sequence[str]
    messages: Sequence[str]
    stack_traces: Sequence[str | None]
    exception_parent_indices: Sequence[int]


def type_name(fault: BaseException) -> str:
    """Return the module-qualified name of an exception's type."""
    cls = type(fault)
    return f"{cls.__module__}.{cls.__qualname__}"


def fault_message(fault: BaseException) -> str:
    """Return an exception's message, without the sub-exception count of groups."""
    if isinstance(fault, BaseExceptionGroup):
        return fault.message
    return str(fault)


def stack_trace(fault: BaseException) -> str | None:
    """Return the formatted traceback of an exception, if it was ever raised."""
    if fault.__traceback__ is None:
        return None
    return "".join(traceback.format_tb(fault.__traceback__)).rstrip("\n")


def child_faults(
    fault: BaseException, *, follow_causes: bool = True
) -> Sequence[BaseException]:
    """Return the direct children of an exception in the fault tree.

    Exception groups contribute their members. Other exceptions contribute
    their explicit cause when ``follow_causes`` is set.
    """
    if isinstance(fault, BaseExceptionGroup):
        return fault.exceptions
    if follow_causes and fault.__cause__ is not None:
        return (fault.__cause__,)
    return ()


def flatten_fault(
    fault: BaseException, *, follow_causes: bool = True
) -> FlattenedFault:
    """Flatten an exception tree in pre-order.

    The root gets parent index -1. Every other entry points at the index of
    its parent within the same sequences. An exception shared by several
    parents is emitted under each of them. An exception that is its own
    ancestor is not descended into again.
    """
    types: list[str] = []
    messages: list[str] = []
    traces: list[str | None] = []
    parents: list[int] = []
    ancestors: set[int] = set()

    def visit(node: BaseException, parent_index: int) -> None:
        if id(node) in ancestors:
            return

        index = len(types)
        types.append(type_name(node))
        messages.append(fault_message(node))
        traces.append(stack_trace(node))
        parents.append(parent_index)

        ancestors.add(id(node))
        for child in child_faults(node, follow_causes=follow_causes):
            visit(child, index)
        ancestors.discard(id(node))

    visit(fault, -1)

    return FlattenedFault(
        exception_types=tuple(types),
        messages=tuple(messages),
        stack_traces=tuple(traces),
        exception_parent_indices=tuple(parents),
    )
