"""Cooperative cancellation shared between a run and its caller."""

import logging
import threading
from dataclasses import dataclass, field

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class CancellationSignal:
    """Flag requesting that remaining work be cancelled.

    Setting the flag never interrupts anything. Consumers poll ``requested``
    between units of work. Requesting is idempotent and thread-safe.
    """

    _event: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def requested(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def request(self) -> None:
        """Request cancellation."""
        if not self._event.is_set():
            log.debug("Cancellation requested")
        self._event.set()
