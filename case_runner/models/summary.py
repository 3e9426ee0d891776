"""Summary of a single test case execution."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True, kw_only=True)
class RunSummary:
    """Counts and elapsed time produced by running one test case.

    The default instance is the all-zero summary used when execution is skipped.
    """

    total: int = 0
    failed: int = 0
    skipped: int = 0
    not_run: int = 0
    time: Decimal = Decimal(0)

    def __post_init__(self) -> None:
        for name in ("total", "failed", "skipped", "not_run"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if self.time < 0:
            raise ValueError("time must be non-negative")
