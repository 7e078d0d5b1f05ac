"""Operation/time budget for population-sized scans."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from .errors import BudgetExceeded


class OperationBudget:
    """
    Caps the work done by a long-running scan.

    The budget is exhausted once ``max_operations`` units have been consumed,
    ``max_seconds`` have elapsed since construction, or ``cancel_event`` is set.
    All limits are optional; a budget with none of them never runs out.
    """

    def __init__(
        self,
        max_operations: Optional[int] = None,
        max_seconds: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_operations is not None and max_operations < 0:
            raise ValueError("max_operations must be non-negative.")
        if max_seconds is not None and max_seconds < 0:
            raise ValueError("max_seconds must be non-negative.")
        self.max_operations = max_operations
        self.max_seconds = max_seconds
        self.cancel_event = cancel_event
        self._clock = clock
        self._started = clock()
        self.operations = 0

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    def exhausted_reason(self) -> Optional[str]:
        if self.cancel_event is not None and self.cancel_event.is_set():
            return "cancelled"
        if self.max_operations is not None and self.operations >= self.max_operations:
            return f"operation limit {self.max_operations} reached"
        if self.max_seconds is not None and self.elapsed >= self.max_seconds:
            return f"time limit {self.max_seconds:g}s reached"
        return None

    def exhausted(self) -> bool:
        return self.exhausted_reason() is not None

    def consume(self, units: int = 1) -> None:
        """Record ``units`` of work, raising ``BudgetExceeded`` if none is left."""

        reason = self.exhausted_reason()
        if reason is not None:
            raise BudgetExceeded(reason)
        self.operations += units


__all__ = ["OperationBudget"]
