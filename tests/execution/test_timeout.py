"""Tests for Deadline."""

import pytest

from orderstream.core.errors import WorkflowTimeout
from orderstream.execution.timeout import Deadline


class TestDeadline:
    def test_rejects_non_positive(self, clock):
        with pytest.raises(ValueError):
            Deadline.start(0, clock=clock)

    def test_remaining_and_elapsed(self, clock):
        deadline = Deadline.start(10.0, clock=clock)
        clock.advance(4.0)
        assert deadline.elapsed == 4.0
        assert deadline.remaining() == 6.0
        assert not deadline.is_expired()

    def test_check_raises_after_expiry(self, clock):
        deadline = Deadline.start(10.0, operation="wf-1", clock=clock)
        deadline.check("first")
        clock.advance(10.0)
        with pytest.raises(WorkflowTimeout) as exc_info:
            deadline.check("SHIP_ORDER")
        assert exc_info.value.timeout_seconds == 10.0
        assert "SHIP_ORDER" in str(exc_info.value)
