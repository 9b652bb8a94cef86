"""Tests for the shard worker pool."""

import threading

import pytest

from orderstream.core.errors import RetryableError
from orderstream.core.result import Err, Ok
from orderstream.execution.workers import (
    DEFAULT_SHARD,
    Consumer,
    ShardBatch,
    ShardWorkerPool,
    group_by_shard,
)


class RecordingConsumer:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.seen: list[tuple[str, list]] = []
        self._lock = threading.Lock()

    def handle_batch(self, batch):
        with self._lock:
            self.seen.append((threading.current_thread().name, list(batch)))
        if any(r in self.fail_on for r in batch):
            return Err(RetryableError("sink down"))
        if "explode" in batch:
            raise RuntimeError("boom")
        return Ok(len(batch))


class TestShardWorkerPool:
    def test_consumer_protocol(self):
        assert isinstance(RecordingConsumer(), Consumer)

    def test_rejects_zero_workers(self):
        with pytest.raises(ValueError):
            ShardWorkerPool(RecordingConsumer(), max_workers=0)

    def test_all_batches_complete(self):
        consumer = RecordingConsumer()
        batches = [ShardBatch("s1", ["a"]), ShardBatch("s2", ["b"]), ShardBatch("s1", ["c"])]
        result = ShardWorkerPool(consumer, max_workers=2).run(batches)

        assert result.succeeded == 3
        assert result.shards_to_redeliver == []
        assert [o.batch_id for o in result.outcomes] == [b.batch_id for b in batches]

    def test_batches_of_one_shard_run_in_order(self):
        consumer = RecordingConsumer()
        batches = [ShardBatch("s1", [i]) for i in range(5)]
        ShardWorkerPool(consumer, max_workers=4).run(batches)
        assert [records for _, records in consumer.seen] == [[0], [1], [2], [3], [4]]

    def test_failed_batch_halts_its_shard_only(self):
        consumer = RecordingConsumer(fail_on={"bad"})
        batches = [
            ShardBatch("s1", ["bad"]),
            ShardBatch("s1", ["after"]),
            ShardBatch("s2", ["fine"]),
        ]
        result = ShardWorkerPool(consumer, max_workers=2).run(batches)

        statuses = [o.status for o in result.outcomes]
        assert statuses == ["failed", "not_attempted", "completed"]
        assert result.shards_to_redeliver == ["s1"]
        assert ["after"] not in [records for _, records in consumer.seen]

    def test_exception_becomes_err(self):
        result = ShardWorkerPool(RecordingConsumer(), max_workers=1).run(
            [ShardBatch("s1", ["explode"])]
        )
        outcome = result.outcomes[0]
        assert outcome.status == "failed"
        assert isinstance(outcome.result.error, RuntimeError)


class TestGroupByShard:
    def test_groups_by_event_id_prefix(self):
        records = [
            {"eventID": "shardId-000000000001:100", "n": 0},
            {"eventID": "shardId-000000000002:200", "n": 1},
            {"eventID": "shardId-000000000001:101", "n": 2},
        ]
        batches = group_by_shard(records)
        assert [(b.shard_id, [r["n"] for r in b.records]) for b in batches] == [
            ("shardId-000000000001", [0, 2]),
            ("shardId-000000000002", [1]),
        ]

    def test_records_without_event_id_share_default_shard(self):
        batches = group_by_shard([{"kinesis": {}}, {"eventID": "no-shard"}])
        assert [b.shard_id for b in batches] == [DEFAULT_SHARD]
        assert len(batches[0].records) == 2

    def test_empty(self):
        assert group_by_shard([]) == []
