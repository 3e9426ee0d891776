"""Message bus carrying lifecycle messages out of a run."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from case_runner.models.messages import TestClassMessage

log = logging.getLogger(__name__)


class MessageBus(Protocol):
    """Sink for lifecycle messages.

    Messages are delivered synchronously, in call order, without deduplication.
    """

    def publish(self, message: TestClassMessage) -> bool:
        """Deliver a message.

        Returns:
            True to keep running, False to request cancellation

        """
        ...


@dataclass(frozen=True, kw_only=True)
class ForwardingMessageBus:
    """Message bus that forwards every message to a sink callable.

    The sink may return a bool continue-value; ``None`` counts as ``True``.
    Publication is serialized so runs on different threads may share the bus.
    """

    sink: Callable[[TestClassMessage], bool | None]
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def publish(self, message: TestClassMessage) -> bool:
        """Forward a message to the sink."""
        with self._lock:
            log.debug("Publishing %s", type(message).__name__)
            result = self.sink(message)
        return result is None or result
