"""
Workflow orchestrators - start and describe named executions.

Execution names are the idempotency key of the workflow side: starting a
name that already exists never runs the workflow a second time.

ARCHITECTURE
────────────
::

    Orchestrator (Protocol)
      ├── .start_execution(name, input) -> StartOutcome  (started | already_exists)
      └── .describe_execution(name)     -> ExecutionRecord

    LocalOrchestrator(engine)          in-process, thread pool
    StepFunctionsOrchestrator(client)  boto3 "stepfunctions" adapter

Error mapping of the remote adapter::

    ExecutionAlreadyExists                           → already_exists
    InvalidName / InvalidExecutionInput / Validation → PermanentError
    anything else                                    → RetryableError
"""

from __future__ import annotations

import json
import re
import threading
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from botocore.exceptions import BotoCoreError, ClientError

from orderstream.core.errors import ErrorCategory, PermanentError, RetryableError
from orderstream.core.logging import get_logger
from orderstream.orchestration.engine import (
    ExecutionRecord,
    ExecutionStatus,
    OrderWorkflowEngine,
    freeze,
)
from orderstream.orchestration.order_workflow import OrderWorkflowState

logger = get_logger(__name__)

MAX_EXECUTION_NAME_LENGTH = 80
EXECUTION_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,80}$")


def validate_execution_name(name: str) -> None:
    """Raise ``PermanentError`` unless ``name`` is a valid execution name."""
    if not isinstance(name, str) or not EXECUTION_NAME_PATTERN.match(name):
        raise PermanentError(
            f"Invalid execution name {name!r}",
            category=ErrorCategory.VALIDATION,
        ).with_context(execution_name=str(name))


def encode_input(name: str, execution_input: Mapping[str, Any]) -> str:
    try:
        return json.dumps(execution_input, sort_keys=True)
    except (TypeError, ValueError) as e:
        raise PermanentError(
            f"Execution input is not JSON-serialisable: {e}", cause=e
        ).with_context(execution_name=name) from e


@dataclass(frozen=True)
class StartOutcome:
    name: str
    status: str  # "started" or "already_exists"
    execution_arn: str | None = None
    started_at: datetime | None = None

    @property
    def already_existed(self) -> bool:
        return self.status == "already_exists"


@runtime_checkable
class Orchestrator(Protocol):
    def start_execution(self, name: str, execution_input: Mapping[str, Any]) -> StartOutcome: ...

    def describe_execution(self, name: str) -> ExecutionRecord: ...


# =============================================================================
# Local
# =============================================================================


class LocalOrchestrator:
    """
    Runs executions in-process on a worker pool.

    The name is registered under a lock before the run is scheduled, so two
    concurrent starts of one name produce exactly one run. A name whose run
    could not be scheduled is unregistered again. The engine updates the
    registered record in place, so ``describe_execution`` reports the
    current state while the run is in progress.

    Example:
        >>> orchestrator = LocalOrchestrator(engine, max_workers=4)
        >>> orchestrator.start_execution("o-1-1700000000000", {"orderId": "o-1"})
        >>> record = orchestrator.wait("o-1-1700000000000")
        >>> record.status
        <ExecutionStatus.SUCCEEDED: 'SUCCEEDED'>
    """

    def __init__(self, engine: OrderWorkflowEngine, max_workers: int = 4) -> None:
        self._engine = engine
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="orderstream-workflow"
        )
        self._lock = threading.Lock()
        self._records: dict[str, ExecutionRecord] = {}
        self._futures: dict[str, Future[ExecutionRecord]] = {}

    def start_execution(self, name: str, execution_input: Mapping[str, Any]) -> StartOutcome:
        validate_execution_name(name)
        encode_input(name, execution_input)

        with self._lock:
            if name in self._records:
                logger.info("orchestrator.already_exists", execution_name=name)
                return StartOutcome(name=name, status="already_exists", execution_arn=_local_arn(name))
            placeholder = ExecutionRecord(name=name, input=freeze(execution_input))
            self._records[name] = placeholder
            try:
                self._futures[name] = self._executor.submit(self._run, placeholder, execution_input)
            except Exception:
                del self._records[name]
                logger.exception("orchestrator.schedule_failed", execution_name=name)
                raise

        logger.info("orchestrator.started", execution_name=name)
        return StartOutcome(
            name=name,
            status="started",
            execution_arn=_local_arn(name),
            started_at=placeholder.started_at,
        )

    def describe_execution(self, name: str) -> ExecutionRecord:
        with self._lock:
            record = self._records.get(name)
        if record is None:
            raise PermanentError(f"Execution {name!r} does not exist").with_context(
                execution_name=name
            )
        return record

    def wait(self, name: str, timeout: float | None = None) -> ExecutionRecord:
        """Block until the execution has stopped."""
        with self._lock:
            future = self._futures.get(name)
        if future is None:
            return self.describe_execution(name)
        return future.result(timeout=timeout)

    def list_executions(self, status: ExecutionStatus | None = None) -> list[ExecutionRecord]:
        with self._lock:
            records = list(self._records.values())
        if status is not None:
            records = [r for r in records if r.status is status]
        return records

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run(self, record: ExecutionRecord, execution_input: Mapping[str, Any]) -> ExecutionRecord:
        try:
            return self._engine.run(record.name, execution_input, record=record)
        except Exception as e:
            logger.exception("orchestrator.run_crashed", execution_name=record.name)
            record.status = ExecutionStatus.FAILED
            record.state = OrderWorkflowState.FAILED
            record.error_kind = type(e).__name__
            record.error_message = str(e)
            record.stopped_at = datetime.now(UTC)
            return record

    def __enter__(self) -> LocalOrchestrator:
        return self

    def __exit__(self, *args: Any) -> None:
        self.shutdown()


def _local_arn(name: str) -> str:
    return f"local:execution:{name}"


# =============================================================================
# Step Functions
# =============================================================================

_ALREADY_EXISTS = "ExecutionAlreadyExists"
_PERMANENT_CODES = frozenset({"InvalidName", "InvalidExecutionInput", "ValidationException",
                              "InvalidArn", "StateMachineDoesNotExist", "StateMachineDeleting"})

_REMOTE_STATUS = {
    "RUNNING": ExecutionStatus.RUNNING,
    "SUCCEEDED": ExecutionStatus.SUCCEEDED,
    "FAILED": ExecutionStatus.FAILED,
    "TIMED_OUT": ExecutionStatus.FAILED,
    "ABORTED": ExecutionStatus.FAILED,
}


@dataclass
class StepFunctionsOrchestrator:
    """Adapter over a boto3 ``stepfunctions`` client.

    Attributes:
        client: boto3 ``stepfunctions`` client
        state_machine_arn: ARN of the order state machine
    """

    client: Any
    state_machine_arn: str
    _execution_prefix: str = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if ":stateMachine:" not in self.state_machine_arn:
            raise ValueError(f"Not a state machine ARN: {self.state_machine_arn!r}")
        self._execution_prefix = self.state_machine_arn.replace(":stateMachine:", ":execution:", 1)

    def execution_arn(self, name: str) -> str:
        return f"{self._execution_prefix}:{name}"

    def start_execution(self, name: str, execution_input: Mapping[str, Any]) -> StartOutcome:
        validate_execution_name(name)
        body = encode_input(name, execution_input)

        try:
            response = self.client.start_execution(
                stateMachineArn=self.state_machine_arn, name=name, input=body
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code == _ALREADY_EXISTS:
                logger.info("orchestrator.already_exists", execution_name=name)
                return StartOutcome(
                    name=name, status="already_exists", execution_arn=self.execution_arn(name)
                )
            if code in _PERMANENT_CODES:
                raise PermanentError(
                    f"StartExecution rejected {name}: {code}", cause=e
                ).with_context(execution_name=name) from e
            raise RetryableError(
                f"StartExecution failed for {name}: {code}",
                category=ErrorCategory.ORCHESTRATION,
                cause=e,
            ).with_context(execution_name=name) from e
        except BotoCoreError as e:
            raise RetryableError(
                f"StartExecution transport error for {name}: {e}", cause=e
            ).with_context(execution_name=name) from e

        logger.info("orchestrator.started", execution_name=name, execution_arn=response["executionArn"])
        return StartOutcome(
            name=name,
            status="started",
            execution_arn=response["executionArn"],
            started_at=response.get("startDate"),
        )

    def describe_execution(self, name: str) -> ExecutionRecord:
        try:
            response = self.client.describe_execution(executionArn=self.execution_arn(name))
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code in ("ExecutionDoesNotExist", "InvalidArn"):
                raise PermanentError(f"Execution {name!r} does not exist", cause=e).with_context(
                    execution_name=name
                ) from e
            raise RetryableError(f"DescribeExecution failed: {code}", cause=e) from e
        except BotoCoreError as e:
            raise RetryableError(f"DescribeExecution transport error: {e}", cause=e) from e

        remote_status = response.get("status", "RUNNING")
        status = _REMOTE_STATUS.get(remote_status, ExecutionStatus.RUNNING)
        if status is ExecutionStatus.SUCCEEDED:
            state = OrderWorkflowState.SUCCEEDED
        elif status is ExecutionStatus.FAILED:
            state = OrderWorkflowState.FAILED
        else:
            state = OrderWorkflowState.PROCESS_ORDER

        error_kind = response.get("error")
        if remote_status == "TIMED_OUT":
            error_kind = "Timeout"

        record = ExecutionRecord(
            name=name,
            input=freeze(json.loads(response.get("input") or "{}")),
            status=status,
            state=state,
            output=json.loads(response.get("output") or "{}"),
            error_kind=error_kind,
            error_message=response.get("cause"),
        )
        if response.get("startDate"):
            record.started_at = response["startDate"]
        record.stopped_at = response.get("stopDate")
        return record


__all__ = [
    "MAX_EXECUTION_NAME_LENGTH",
    "EXECUTION_NAME_PATTERN",
    "StartOutcome",
    "Orchestrator",
    "LocalOrchestrator",
    "StepFunctionsOrchestrator",
    "validate_execution_name",
]
