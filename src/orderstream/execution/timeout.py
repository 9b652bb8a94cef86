"""Wall-clock deadlines checked between steps.

A deadline never interrupts running code. Callers check it at safe points
(between records, between workflow steps) so a side-effecting call is never
cut in half.

Example::

    deadline = Deadline.start(300.0, operation="Order-o-1-1700000000000")
    for state in states:
        deadline.check(state.value)
        run(state)
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from orderstream.core.errors import WorkflowTimeout


@dataclass
class Deadline:
    """Tracks an absolute deadline on a monotonic clock.

    Attributes:
        deadline: Absolute deadline timestamp (clock units)
        timeout_seconds: Original timeout value in seconds
        operation: Name/description of the operation
        start_time: When the deadline started
        clock: Monotonic clock, injectable for tests
    """

    deadline: float
    timeout_seconds: float
    operation: str = "operation"
    start_time: float = 0.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    @classmethod
    def start(
        cls,
        seconds: float,
        operation: str = "operation",
        clock: Callable[[], float] = time.monotonic,
    ) -> Deadline:
        if seconds <= 0:
            raise ValueError(f"Timeout must be positive, got {seconds}")
        now = clock()
        return cls(
            deadline=now + seconds,
            timeout_seconds=seconds,
            operation=operation,
            start_time=now,
            clock=clock,
        )

    def remaining(self) -> float:
        """Remaining seconds; negative once expired."""
        return self.deadline - self.clock()

    @property
    def elapsed(self) -> float:
        return self.clock() - self.start_time

    def is_expired(self) -> bool:
        return self.clock() >= self.deadline

    def check(self, op_name: str | None = None) -> None:
        """Raise if the deadline has passed.

        Raises:
            WorkflowTimeout: If the deadline has passed
        """
        if self.is_expired():
            raise WorkflowTimeout(
                f"'{self.operation}' exceeded {self.timeout_seconds}s"
                f" (before {op_name or 'next step'}, ran {self.elapsed:.2f}s)",
                timeout_seconds=self.timeout_seconds,
                elapsed=self.elapsed,
            )
