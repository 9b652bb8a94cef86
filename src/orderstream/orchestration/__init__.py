"""
orderstream.orchestration - order workflow execution.

Exports:
    OrderWorkflowEngine, ExecutionRecord: Local state-graph interpreter
    OrderStepCapabilities: Default side effects behind each step
    LocalOrchestrator, StepFunctionsOrchestrator: Named-execution backends
    WorkflowStarter: Dispatcher sink that starts one execution per mutation
"""

from orderstream.orchestration.engine import (
    ExecutionRecord,
    ExecutionStatus,
    HistoryEvent,
    OrderWorkflowEngine,
)
from orderstream.orchestration.order_workflow import (
    INITIAL_STATE,
    ORDER_WORKFLOW,
    OrderWorkflowState,
    StateDefinition,
    StepKind,
)
from orderstream.orchestration.orchestrator import (
    LocalOrchestrator,
    Orchestrator,
    StartOutcome,
    StepFunctionsOrchestrator,
)
from orderstream.orchestration.starter import WorkflowStarter, execution_name
from orderstream.orchestration.steps import (
    OrderStepCapabilities,
    PaymentGateway,
    RecordedPaymentGateway,
    StepCapabilities,
)

__all__ = [
    "ExecutionRecord",
    "ExecutionStatus",
    "HistoryEvent",
    "INITIAL_STATE",
    "LocalOrchestrator",
    "ORDER_WORKFLOW",
    "Orchestrator",
    "OrderStepCapabilities",
    "OrderWorkflowEngine",
    "OrderWorkflowState",
    "PaymentGateway",
    "RecordedPaymentGateway",
    "StartOutcome",
    "StateDefinition",
    "StepCapabilities",
    "StepFunctionsOrchestrator",
    "StepKind",
    "WorkflowStarter",
    "execution_name",
]
