"""Tests for execution naming and WorkflowStarter."""

from datetime import UTC, datetime

import pytest
from conftest import ScriptedCapabilities, change_record

from orderstream.changefeed.models import parse_stream_record
from orderstream.core.errors import PermanentError, RetryableError
from orderstream.core.result import Err, Ok
from orderstream.orchestration.engine import ExecutionStatus, OrderWorkflowEngine
from orderstream.orchestration.orchestrator import (
    EXECUTION_NAME_PATTERN,
    LocalOrchestrator,
    StartOutcome,
)
from orderstream.orchestration.starter import (
    WorkflowStarter,
    epoch_millis,
    execution_input,
    execution_name,
)

WHEN = datetime(2024, 1, 1, tzinfo=UTC)


class TestExecutionName:
    def test_plain_id(self):
        assert execution_name("o-1", WHEN) == "o-1-1704067200000"

    def test_millisecond_precision(self):
        moment = datetime(2024, 1, 1, 0, 0, 0, 123000, tzinfo=UTC)
        assert epoch_millis(moment) == 1704067200123

    def test_same_event_same_name(self):
        assert execution_name("o-1", WHEN) == execution_name("o-1", WHEN)

    @pytest.mark.parametrize("entity_id", ["o/1", "order 1", "ü-1", "", "x" * 200])
    def test_names_are_always_valid(self, entity_id):
        name = execution_name(entity_id, WHEN)
        assert EXECUTION_NAME_PATTERN.match(name)
        assert name.endswith("-1704067200000")

    def test_rewritten_ids_do_not_collide(self):
        assert execution_name("o/1", WHEN) != execution_name("o_1", WHEN)
        assert execution_name("o/1", WHEN) != execution_name("o 1", WHEN)

    def test_truncated_ids_do_not_collide(self):
        assert execution_name("x" * 100 + "a", WHEN) != execution_name("x" * 100 + "b", WHEN)

    def test_input_carries_order_fields(self, sample_order):
        payload = execution_input("o-1", sample_order, WHEN)
        assert payload["orderId"] == "o-1"
        assert payload["orderData"] == sample_order
        assert payload["paymentStatus"] == "SUCCESS"
        assert payload["timestamp"] == "2024-01-01T00:00:00+00:00"


class FakeOrchestrator:
    def __init__(self, error=None):
        self.error = error
        self.started = []

    def start_execution(self, name, execution_input):
        if self.error is not None:
            raise self.error
        self.started.append((name, execution_input))
        return StartOutcome(name=name, status="started")

    def describe_execution(self, name):
        raise NotImplementedError


class TestWorkflowStarter:
    def test_starts_named_execution(self, sample_order):
        orchestrator = FakeOrchestrator()
        result = WorkflowStarter(orchestrator).start("o-1", sample_order, WHEN)

        assert isinstance(result, Ok)
        assert result.value.name == "o-1-1704067200000"
        name, payload = orchestrator.started[0]
        assert payload["orderData"] == sample_order

    def test_permanent_rejection(self, sample_order):
        starter = WorkflowStarter(FakeOrchestrator(PermanentError("bad input")))
        result = starter.start("o-1", sample_order, WHEN)
        assert isinstance(result, Err)
        assert isinstance(result.error, PermanentError)
        assert result.error.context.sink == "workflow"

    @pytest.mark.parametrize("error", [RetryableError("throttled"), ConnectionError("reset"), RuntimeError("?")])
    def test_other_failures_are_retryable(self, sample_order, error):
        result = WorkflowStarter(FakeOrchestrator(error)).start("o-1", sample_order, WHEN)
        assert isinstance(result.error, RetryableError)
        assert result.error.context.execution_name == "o-1-1704067200000"

    def test_sink_uses_change_time(self, sample_order):
        orchestrator = FakeOrchestrator()
        event = parse_stream_record(change_record(sample_order, created=1_704_067_200.5))
        WorkflowStarter(orchestrator)("o-1", sample_order, event)
        assert orchestrator.started[0][0] == "o-1-1704067200500"

    def test_redelivery_runs_workflow_once(self, sample_order):
        caps = ScriptedCapabilities()
        with LocalOrchestrator(OrderWorkflowEngine(caps)) as orchestrator:
            starter = WorkflowStarter(orchestrator)
            first = starter.start("o-1", sample_order, WHEN)
            second = starter.start("o-1", sample_order, WHEN)

            assert first.value.status == "started"
            assert second.value.already_existed
            record = orchestrator.wait(first.value.name, timeout=10)

        assert record.status is ExecutionStatus.SUCCEEDED
        assert len([c for c in caps.calls if c[0].value == "process_order"]) == 1
