"""Tests for the clickstream fan-out processor."""

import gzip
import json

import pytest
from conftest import click_record

from orderstream.clickstream.batch_sink import BufferedBatchSink
from orderstream.clickstream.models import encode_record
from orderstream.clickstream.processor import ClickstreamConsumer, ClickstreamProcessor
from orderstream.clickstream.storage import MemoryObjectStore
from orderstream.core.errors import BatchAborted, MalformedRecord, RetryableError
from orderstream.core.idempotency import RecentKeys
from orderstream.core.result import Err, Ok


class FakeRecommendations:
    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    def put_event(self, event):
        if self.fail:
            raise RetryableError("throttled")
        self.events.append(event)


class ListSink:
    def __init__(self, fail_at=None):
        self.records = []
        self.fail_at = fail_at

    def append(self, record):
        if self.fail_at is not None and len(self.records) == self.fail_at:
            raise RuntimeError("sink closed")
        self.records.append(record)


BAD = {"kinesis": {"data": "%%%"}}


class TestFanOut:
    def test_every_record_forwarded_in_order(self):
        recs, sink = FakeRecommendations(), ListSink()
        batch = [click_record(userId="u-1", sessionId="s", eventType="click", n=i) for i in range(3)]
        result = ClickstreamProcessor(recs, sink).process(batch)

        assert result.to_dict() == {
            "received": 3,
            "forwarded": 3,
            "recommended": 3,
            "recommendation_failures": 0,
            "duplicates": 0,
        }
        assert [json.loads(r)["n"] for r in sink.records] == [0, 1, 2]

    def test_events_without_type_skip_recommendations(self):
        recs, sink = FakeRecommendations(), ListSink()
        ClickstreamProcessor(recs, sink).process([click_record(userId="u-1", page="/")])
        assert recs.events == []
        assert len(sink.records) == 1

    def test_recommendation_failure_is_best_effort(self):
        sink = ListSink()
        result = ClickstreamProcessor(FakeRecommendations(fail=True), sink).process(
            [click_record(sessionId="s", eventType="click")]
        )
        assert result.forwarded == 1
        assert result.recommended == 0
        assert result.recommendation_failures == 1

    def test_empty_batch(self):
        result = ClickstreamProcessor(FakeRecommendations(), ListSink()).process([])
        assert result.received == 0


class TestAbort:
    def test_undecodable_record_aborts_batch(self):
        sink = ListSink()
        batch = [click_record(userId="u-1"), BAD, click_record(userId="u-2")]

        with pytest.raises(BatchAborted) as exc_info:
            ClickstreamProcessor(FakeRecommendations(), sink).process(batch)

        error = exc_info.value
        assert error.failed_index == 1
        assert error.forwarded == 1
        assert error.retryable
        assert isinstance(error.cause, MalformedRecord)
        assert len(sink.records) == 1

    def test_sink_failure_aborts_batch(self):
        sink = ListSink(fail_at=1)
        batch = [click_record(userId=f"u-{i}") for i in range(3)]
        with pytest.raises(BatchAborted) as exc_info:
            ClickstreamProcessor(FakeRecommendations(), sink).process(batch)
        assert exc_info.value.failed_index == 1

    def test_consumer_returns_err(self):
        consumer = ClickstreamConsumer(ClickstreamProcessor(FakeRecommendations(), ListSink()))
        assert isinstance(consumer.handle_batch([BAD]), Err)
        assert isinstance(consumer.handle_batch([click_record(userId="u-1")]), Ok)


def sequenced(sequence, **event):
    return encode_record(event, sequence_number=sequence)


def undecodable(sequence):
    return {"kinesis": {"data": "%%%", "sequenceNumber": sequence}}


class TestRedelivery:
    def test_redelivered_batch_buffers_one_copy(self):
        recs = FakeRecommendations()
        sink = BufferedBatchSink(MemoryObjectStore())
        consumer = ClickstreamConsumer(ClickstreamProcessor(recs, sink))
        batch = [sequenced("1", userId="u-1", eventType="click"), undecodable("2")]

        assert isinstance(consumer.handle_batch(batch), Err)
        assert isinstance(consumer.handle_batch(batch), Err)

        assert sink.pending_records == 1
        assert len(recs.events) == 1

    def test_redelivery_resumes_after_forwarded_records(self):
        sink = ListSink()
        processor = ClickstreamProcessor(FakeRecommendations(), sink)
        with pytest.raises(BatchAborted):
            processor.process([sequenced("1", userId="u-1", n=1), undecodable("2")])

        result = processor.process(
            [sequenced("1", userId="u-1", n=1), sequenced("2", userId="u-1", n=2)]
        )

        assert result.forwarded == 1
        assert result.duplicates == 1
        assert [json.loads(r)["n"] for r in sink.records] == [1, 2]

    def test_records_without_identity_are_never_skipped(self):
        sink = ListSink()
        processor = ClickstreamProcessor(FakeRecommendations(), sink)
        processor.process([click_record(userId="u-1")])
        processor.process([click_record(userId="u-1")])
        assert len(sink.records) == 2

    def test_failed_record_is_not_remembered(self):
        forwarded = RecentKeys()
        processor = ClickstreamProcessor(FakeRecommendations(), ListSink(fail_at=0), forwarded)
        with pytest.raises(BatchAborted):
            processor.process([sequenced("1", userId="u-1")])
        assert not forwarded.seen("1")

    def test_aborted_batch_leaves_prior_batch_intact(self):
        store = MemoryObjectStore()
        sink = BufferedBatchSink(store)
        processor = ClickstreamProcessor(FakeRecommendations(), sink)

        processor.process([sequenced("1", userId="u-1", n=1), sequenced("2", userId="u-2", n=2)])
        with pytest.raises(BatchAborted):
            processor.process([sequenced("3", userId="u-3", n=3), BAD, sequenced("4", n=4)])
        report = sink.close()

        assert report.status == "delivered"
        written = gzip.decompress(store.get(report.key)).splitlines()
        assert [json.loads(line)["n"] for line in written] == [1, 2, 3]
