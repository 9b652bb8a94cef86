"""
Order workflow definition - the state graph the engine interprets.

Manifesto:
    The order workflow is data, not control flow. Every state names the
    step it runs and where it goes next; the engine walks the table in a
    single loop. Adding a state means adding a row, and a missing row is
    caught at import time rather than mid-execution.

Architecture:
    ::

        PROCESS_ORDER   ─► PROCESS_PAYMENT
        PROCESS_PAYMENT ─► choice(paymentStatus)
                             == "SUCCESS" ─► NOTIFY_SUCCESS ─► SHIP_ORDER
                                                ─► NOTIFY_SHIPMENT ─► SUCCEEDED
                             otherwise    ─► NOTIFY_FAILURE ─► FAILED

Guardrails:
    ❌ Branching with if/else inside step code
    ✅ Choice functions on the state definition

    ❌ Retrying notification steps or failing the order on them
    ✅ Notifications are best-effort; only payment is retried

Tags:
    workflow, state-machine, choice, orderstream
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

PAYMENT_SUCCESS = "SUCCESS"


class OrderWorkflowState(str, Enum):
    PROCESS_ORDER = "PROCESS_ORDER"
    PROCESS_PAYMENT = "PROCESS_PAYMENT"
    NOTIFY_SUCCESS = "NOTIFY_SUCCESS"
    NOTIFY_FAILURE = "NOTIFY_FAILURE"
    SHIP_ORDER = "SHIP_ORDER"
    NOTIFY_SHIPMENT = "NOTIFY_SHIPMENT"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderWorkflowState.SUCCEEDED, OrderWorkflowState.FAILED)


class StepKind(str, Enum):
    """Side-effecting operations a state can run."""

    PROCESS_ORDER = "process_order"
    PROCESS_PAYMENT = "process_payment"
    NOTIFY_SUCCESS = "notify_success"
    NOTIFY_FAILURE = "notify_failure"
    SHIP_ORDER = "ship_order"
    NOTIFY_SHIPMENT = "notify_shipment"


Choice = Callable[[Mapping[str, Any], Mapping[str, Any]], OrderWorkflowState]


@dataclass(frozen=True)
class StateDefinition:
    """One row of the state table.

    Attributes:
        step: Step run on entering the state
        next_state: Fixed successor, unless ``choose`` is set
        choose: Picks the successor from (step output, step input)
        retry: Retry the step on transient failures
        best_effort: Step failure is logged and the workflow moves on
    """

    step: StepKind
    next_state: OrderWorkflowState | None = None
    choose: Choice | None = None
    retry: bool = False
    best_effort: bool = False

    def __post_init__(self) -> None:
        if self.next_state is None and self.choose is None:
            raise ValueError(f"State running {self.step.value} has no successor")

    def successor(
        self, output: Mapping[str, Any], step_input: Mapping[str, Any]
    ) -> OrderWorkflowState:
        if self.choose is not None:
            return self.choose(output, step_input)
        if self.next_state is None:
            raise RuntimeError(f"State running {self.step.value} has no successor")
        return self.next_state


def payment_status(output: Mapping[str, Any], step_input: Mapping[str, Any]) -> Any:
    """Payment status from the payment step, else from the order."""
    if "paymentStatus" in output:
        return output["paymentStatus"]
    return step_input.get("paymentStatus")


def choose_after_payment(
    output: Mapping[str, Any], step_input: Mapping[str, Any]
) -> OrderWorkflowState:
    if payment_status(output, step_input) == PAYMENT_SUCCESS:
        return OrderWorkflowState.NOTIFY_SUCCESS
    return OrderWorkflowState.NOTIFY_FAILURE


S = OrderWorkflowState

ORDER_WORKFLOW: dict[OrderWorkflowState, StateDefinition] = {
    S.PROCESS_ORDER: StateDefinition(StepKind.PROCESS_ORDER, next_state=S.PROCESS_PAYMENT),
    S.PROCESS_PAYMENT: StateDefinition(
        StepKind.PROCESS_PAYMENT, choose=choose_after_payment, retry=True
    ),
    S.NOTIFY_SUCCESS: StateDefinition(
        StepKind.NOTIFY_SUCCESS, next_state=S.SHIP_ORDER, best_effort=True
    ),
    S.NOTIFY_FAILURE: StateDefinition(
        StepKind.NOTIFY_FAILURE, next_state=S.FAILED, best_effort=True
    ),
    S.SHIP_ORDER: StateDefinition(StepKind.SHIP_ORDER, next_state=S.NOTIFY_SHIPMENT),
    S.NOTIFY_SHIPMENT: StateDefinition(
        StepKind.NOTIFY_SHIPMENT, next_state=S.SUCCEEDED, best_effort=True
    ),
}

INITIAL_STATE = S.PROCESS_ORDER

# Every non-terminal state needs a row
_missing = {s for s in OrderWorkflowState if not s.is_terminal} - set(ORDER_WORKFLOW)
if _missing:
    raise RuntimeError(f"States without a definition: {sorted(s.value for s in _missing)}")


__all__ = [
    "PAYMENT_SUCCESS",
    "OrderWorkflowState",
    "StepKind",
    "StateDefinition",
    "ORDER_WORKFLOW",
    "INITIAL_STATE",
    "payment_status",
    "choose_after_payment",
]
