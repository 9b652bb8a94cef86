"""Tests for the change dispatcher."""

import pytest
from conftest import RecordingSink, change_record

from orderstream.changefeed.dispatcher import ChangeDispatcher, OutcomeStatus, Sink
from orderstream.changefeed.models import parse_stream_record
from orderstream.core.errors import MalformedRecord, PermanentError, RetryableError
from orderstream.core.result import Err


def events(*raws):
    return [parse_stream_record(r) for r in raws]


class TestRouting:
    """Which events reach the sinks."""

    def test_sink_protocol(self):
        assert isinstance(RecordingSink("a"), Sink)

    def test_insert_and_modify_reach_every_sink(self, sample_order):
        search, workflow = RecordingSink("search"), RecordingSink("workflow")
        result = ChangeDispatcher([search, workflow]).dispatch(
            events(
                change_record(sample_order, sequence="1"),
                change_record(sample_order, event_name="MODIFY", sequence="2"),
            )
        )
        assert len(search.calls) == 2
        assert len(workflow.calls) == 2
        assert search.calls[0] == ("o-1", sample_order)
        assert all(o.status is OutcomeStatus.OK for o in result.outcomes)
        assert not result.should_redeliver

    def test_remove_is_skipped(self):
        sink = RecordingSink("search")
        result = ChangeDispatcher([sink]).dispatch(
            events(change_record(None, event_name="REMOVE", sequence="9"))
        )
        assert sink.calls == []
        assert result.skipped == ["9"]
        assert result.outcomes == []

    def test_sinks_receive_independent_copies(self, sample_order):
        class Mutating:
            name = "mutating"

            def __call__(self, entity_id, document, event):
                document["items"].clear()
                return Err(PermanentError("nope"))

        observer = RecordingSink("observer")
        ChangeDispatcher([Mutating(), observer]).dispatch(events(change_record(sample_order)))
        assert observer.calls[0][1]["items"] == [{"sku": "A-1", "qty": 2}]

    def test_duplicate_sink_names_rejected(self):
        with pytest.raises(ValueError):
            ChangeDispatcher([RecordingSink("a"), RecordingSink("a")])


class TestFailures:
    """Per-sink failure isolation and redelivery decisions."""

    def test_failing_sink_does_not_block_others(self, sample_order):
        failing = RecordingSink("search", results=[Err(RetryableError("503"))])
        other = RecordingSink("workflow")
        result = ChangeDispatcher([failing, other]).dispatch(events(change_record(sample_order)))

        assert len(other.calls) == 1
        statuses = {o.sink: o.status for o in result.outcomes}
        assert statuses == {"search": OutcomeStatus.RETRYABLE, "workflow": OutcomeStatus.OK}
        assert result.should_redeliver

    def test_permanent_failure_does_not_redeliver(self, sample_order):
        sink = RecordingSink("search", results=[Err(PermanentError("mapping"))])
        result = ChangeDispatcher([sink]).dispatch(events(change_record(sample_order)))
        assert result.outcomes[0].status is OutcomeStatus.PERMANENT
        assert not result.should_redeliver

    def test_raising_sink_is_classified(self, sample_order):
        sink = RecordingSink("search", results=[ConnectionError("reset")])
        result = ChangeDispatcher([sink]).dispatch(events(change_record(sample_order)))
        assert result.outcomes[0].status is OutcomeStatus.RETRYABLE

    def test_malformed_image_skips_sinks_and_continues(self, sample_order):
        sink = RecordingSink("search")
        bad = change_record(None, sequence="1", image={"orderId": {"X": "?"}})
        good = change_record(sample_order, sequence="2")
        result = ChangeDispatcher([sink]).dispatch(events(bad, good))

        assert len(sink.calls) == 1
        malformed = result.outcomes[0]
        assert malformed.sink is None
        assert malformed.sequence_token == "1"
        assert malformed.status is OutcomeStatus.PERMANENT
        assert isinstance(malformed.error, MalformedRecord)
        assert result.outcomes[1].status is OutcomeStatus.OK
        assert not result.should_redeliver

    def test_insert_without_image_is_malformed(self):
        sink = RecordingSink("search")
        result = ChangeDispatcher([sink]).dispatch(events(change_record(None, order_id="o-2")))
        assert sink.calls == []
        assert isinstance(result.outcomes[0].error, MalformedRecord)

    def test_summary(self, sample_order):
        sink = RecordingSink("search", results=[Err(PermanentError("x"))])
        summary = ChangeDispatcher([sink]).dispatch(
            events(change_record(sample_order), change_record(None, event_name="REMOVE"))
        ).to_dict()
        assert summary == {
            "ok": 0,
            "retryable": 0,
            "permanent": 1,
            "skipped": 1,
            "should_redeliver": False,
        }
