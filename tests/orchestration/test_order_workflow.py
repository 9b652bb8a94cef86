"""Tests for the order workflow state table."""

import pytest

from orderstream.orchestration.order_workflow import (
    INITIAL_STATE,
    ORDER_WORKFLOW,
    OrderWorkflowState,
    StateDefinition,
    StepKind,
    choose_after_payment,
    payment_status,
)

S = OrderWorkflowState


class TestStateTable:
    def test_initial_state(self):
        assert INITIAL_STATE is S.PROCESS_ORDER

    def test_every_non_terminal_state_has_a_row(self):
        assert set(ORDER_WORKFLOW) == {s for s in S if not s.is_terminal}

    def test_only_payment_is_retried(self):
        assert [s for s, row in ORDER_WORKFLOW.items() if row.retry] == [S.PROCESS_PAYMENT]

    def test_notifications_are_best_effort(self):
        best_effort = {s for s, row in ORDER_WORKFLOW.items() if row.best_effort}
        assert best_effort == {S.NOTIFY_SUCCESS, S.NOTIFY_FAILURE, S.NOTIFY_SHIPMENT}

    def test_failure_branch_ends_in_failed(self):
        assert ORDER_WORKFLOW[S.NOTIFY_FAILURE].successor({}, {}) is S.FAILED

    def test_row_without_successor_is_rejected(self):
        with pytest.raises(ValueError, match="no successor"):
            StateDefinition(StepKind.SHIP_ORDER)


class TestPaymentChoice:
    @pytest.mark.parametrize(
        "output, step_input, expected",
        [
            ({}, {"paymentStatus": "SUCCESS"}, S.NOTIFY_SUCCESS),
            ({}, {"paymentStatus": "DECLINED"}, S.NOTIFY_FAILURE),
            ({}, {}, S.NOTIFY_FAILURE),
            ({}, {"paymentStatus": "success"}, S.NOTIFY_FAILURE),
            ({"paymentStatus": "SUCCESS"}, {"paymentStatus": "PENDING"}, S.NOTIFY_SUCCESS),
            ({"paymentStatus": "DECLINED"}, {"paymentStatus": "SUCCESS"}, S.NOTIFY_FAILURE),
        ],
    )
    def test_choice(self, output, step_input, expected):
        assert choose_after_payment(output, step_input) is expected

    def test_payment_status_prefers_step_output(self):
        assert payment_status({"paymentStatus": "X"}, {"paymentStatus": "Y"}) == "X"
        assert payment_status({}, {"paymentStatus": "Y"}) == "Y"
        assert payment_status({}, {}) is None
