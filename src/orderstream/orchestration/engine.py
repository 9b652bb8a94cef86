"""
Order Workflow Engine - interprets the order state table.

Manifesto:
    A workflow execution is a walk over an explicit state table. One loop
    checks the deadline, runs the current state's step through the injected
    capabilities, records what happened, and picks the next state. Nothing
    is skipped silently and nothing is half-applied: a step's output becomes
    visible to later steps only once the step has returned.

Architecture:
    ::

        OrderWorkflowEngine(capabilities, timeout_seconds=300, payment_retry)
          └── .run(name, input, record=None) -> ExecutionRecord
                input  = freeze(input)                 read-only for every step
                state  = PROCESS_ORDER
                while not state.is_terminal:
                    deadline.check(state)              between steps only
                    output = capabilities.invoke(step, input + prior outputs)
                             (retried with backoff where the row says so)
                    history.append(...)
                    state  = row.successor(output, step_input)

        ExecutionRecord ── name, status, state, input, output,
                           error_kind, error_message, history, started/stopped

Guardrails:
    ❌ Checking the deadline inside a step
    ✅ Checked between steps and between payment attempts

    ❌ Failing an order because an email bounced
    ✅ Best-effort steps log and move on

Tags:
    workflow, engine, state-machine, retry, timeout, orderstream
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from orderstream.core.errors import PermanentError, WorkflowTimeout, error_kind
from orderstream.core.logging import LogContext, get_logger
from orderstream.execution.retry import ExponentialBackoff, NoRetry, RetryContext, RetryStrategy
from orderstream.execution.timeout import Deadline
from orderstream.orchestration.order_workflow import (
    INITIAL_STATE,
    ORDER_WORKFLOW,
    OrderWorkflowState,
    StateDefinition,
    payment_status,
)
from orderstream.orchestration.steps import StepCapabilities

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0


def utcnow() -> datetime:
    return datetime.now(UTC)


def freeze(value: Any) -> Any:
    """Read-only deep copy: mappings become proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Plain, JSON-serialisable copy of a frozen value."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    return value


class ExecutionStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class HistoryEvent:
    """One visited state."""

    state: OrderWorkflowState
    entered_at: datetime
    exited_at: datetime
    status: str  # "succeeded", "failed", "ignored_failure"
    attempts: int = 1
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "entered_at": self.entered_at.isoformat(),
            "exited_at": self.exited_at.isoformat(),
            "status": self.status,
            "attempts": self.attempts,
            "error": self.error,
        }


@dataclass
class ExecutionRecord:
    """Queryable record of one workflow execution."""

    name: str
    input: Mapping[str, Any]
    status: ExecutionStatus = ExecutionStatus.RUNNING
    state: OrderWorkflowState = INITIAL_STATE
    output: dict[str, Any] = field(default_factory=dict)
    error_kind: str | None = None
    error_message: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    stopped_at: datetime | None = None
    history: list[HistoryEvent] = field(default_factory=list)

    @property
    def visited_states(self) -> list[OrderWorkflowState]:
        return [event.state for event in self.history]

    @property
    def duration_seconds(self) -> float | None:
        if self.stopped_at:
            return (self.stopped_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "state": self.state.value,
            "input": thaw(self.input),
            "output": thaw(self.output),
            "error_kind": self.error_kind,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat(),
            "stopped_at": self.stopped_at.isoformat() if self.stopped_at else None,
            "duration_seconds": self.duration_seconds,
            "history": [event.to_dict() for event in self.history],
        }


class OrderWorkflowEngine:
    """Runs order workflow executions to completion.

    Args:
        capabilities: Side effects behind each step
        timeout_seconds: Wall-clock ceiling of a whole execution
        payment_retry: Strategy for steps marked ``retry``
        definition: State table, defaults to ``ORDER_WORKFLOW``
        clock: Monotonic clock used for the deadline
        sleep: Sleeper used between retry attempts
    """

    def __init__(
        self,
        capabilities: StepCapabilities,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        payment_retry: RetryStrategy | None = None,
        definition: Mapping[OrderWorkflowState, StateDefinition] = ORDER_WORKFLOW,
        initial_state: OrderWorkflowState = INITIAL_STATE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout_seconds}")
        self._capabilities = capabilities
        self._timeout = timeout_seconds
        self._retry = payment_retry or ExponentialBackoff(max_retries=3, base_delay=1.0, max_delay=30.0)
        self._definition = definition
        self._initial = initial_state
        self._clock = clock
        self._sleep = sleep

    def run(
        self,
        name: str,
        execution_input: Mapping[str, Any],
        record: ExecutionRecord | None = None,
    ) -> ExecutionRecord:
        """Run one execution to a terminal state.

        When ``record`` is given it is updated in place as states are
        entered, so a concurrent reader sees the current state.
        """
        if record is None:
            record = ExecutionRecord(name=name, input=freeze(execution_input))
        record.state = self._initial
        deadline = Deadline.start(self._timeout, operation=name, clock=self._clock)
        outputs: dict[str, Any] = {}
        state = self._initial

        with LogContext(execution_name=name):
            logger.info("workflow.start", state=state.value, timeout_seconds=self._timeout)

            while not state.is_terminal:
                record.state = state
                entered_at = utcnow()
                row = self._definition.get(state)
                step_input = freeze({**record.input, **outputs})
                attempts = 0
                try:
                    if row is None:
                        raise PermanentError(f"No definition for state {state.value}")
                    deadline.check(state.value)
                    ctx = self._retry_context(row, state)
                    try:
                        output = ctx.run(self._invoke, row, step_input, deadline)
                    finally:
                        attempts = ctx.attempts
                    next_state = row.successor(output, step_input)
                except WorkflowTimeout as e:
                    self._fail(record, state, e, outputs)
                    break
                except Exception as e:
                    if row is not None and row.best_effort:
                        logger.warning(
                            "workflow.step_failed_ignored",
                            state=state.value,
                            error_kind=error_kind(e),
                            error=str(e),
                        )
                        record.history.append(
                            HistoryEvent(state, entered_at, utcnow(), "ignored_failure", attempts, str(e))
                        )
                        state = row.successor({}, step_input)
                        continue
                    record.history.append(
                        HistoryEvent(state, entered_at, utcnow(), "failed", attempts, str(e))
                    )
                    self._fail(record, state, e, outputs)
                    break

                outputs.update(output)
                record.history.append(HistoryEvent(state, entered_at, utcnow(), "succeeded", attempts))
                logger.debug("workflow.transition", state=state.value, next_state=next_state.value)
                state = next_state

            if record.status is ExecutionStatus.RUNNING:
                record.state = state
                record.output = thaw(outputs)
                if state is OrderWorkflowState.SUCCEEDED:
                    record.status = ExecutionStatus.SUCCEEDED
                else:
                    record.status = ExecutionStatus.FAILED
                    record.error_kind = "PaymentDeclined"
                    record.error_message = (
                        f"Payment status {payment_status(outputs, record.input)!r}"
                    )
            record.stopped_at = utcnow()

            logger.info(
                "workflow.complete",
                status=record.status.value,
                state=record.state.value,
                error_kind=record.error_kind,
                duration_seconds=record.duration_seconds,
                steps=len(record.history),
            )
        return record

    def _invoke(
        self, row: StateDefinition, step_input: Mapping[str, Any], deadline: Deadline
    ) -> dict[str, Any]:
        deadline.check(row.step.value)
        output = self._capabilities.invoke(row.step, step_input)
        if output is None:
            return {}
        if not isinstance(output, Mapping):
            raise PermanentError(
                f"Step {row.step.value} returned {type(output).__name__}, expected a mapping"
            )
        return dict(output)

    def _retry_context(self, row: StateDefinition, state: OrderWorkflowState) -> RetryContext:
        if not row.retry:
            return RetryContext(NoRetry(), sleep=self._sleep)

        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.warning(
                "workflow.step_retry",
                state=state.value,
                attempt=attempt,
                delay=round(delay, 3),
                error_kind=error_kind(error),
                error=str(error),
            )

        return RetryContext(self._retry, on_retry=on_retry, sleep=self._sleep)

    @staticmethod
    def _fail(
        record: ExecutionRecord,
        state: OrderWorkflowState,
        error: Exception,
        outputs: Mapping[str, Any],
    ) -> None:
        record.status = ExecutionStatus.FAILED
        record.state = OrderWorkflowState.FAILED
        record.output = thaw(outputs)
        record.error_kind = error_kind(error)
        record.error_message = str(error)
        logger.error(
            "workflow.failed",
            failed_state=state.value,
            error_kind=record.error_kind,
            error=record.error_message,
        )


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "ExecutionStatus",
    "HistoryEvent",
    "ExecutionRecord",
    "OrderWorkflowEngine",
    "freeze",
    "thaw",
]
