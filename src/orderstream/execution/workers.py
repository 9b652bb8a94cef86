"""Shard worker pool — concurrent across partitions, sequential within one.

WHY
───
Per-key ordering is only guaranteed inside a partition (shard). Batches of
different shards are independent and can run in parallel; batches of the
same shard must run one after another, and records inside a batch strictly
in delivery order.

ARCHITECTURE
────────────
::

    ShardWorkerPool(consumer, max_workers)
      └── .run([ShardBatch, ...])
            ├── group batches by shard_id (delivery order kept)
            ├── one task per shard on a ThreadPoolExecutor
            │     └── consumer.handle_batch(records) for each batch, in order
            └── PoolResult ── per-batch Ok/Err, shards_to_redeliver

    Consumer (Protocol)
      └── .handle_batch(batch) -> Result

A shard stops at its first failed batch: later batches of that shard are
reported as not attempted so the transport redelivers from the failed one.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from orderstream.core.logging import LogContext, get_logger
from orderstream.core.result import Err, Ok, Result

logger = get_logger(__name__)

DEFAULT_SHARD = "shardId-000000000000"


@runtime_checkable
class Consumer(Protocol):
    """Anything that can process one transport batch."""

    def handle_batch(self, batch: Sequence[Any]) -> Result[Any]:
        """Process ``batch`` in order; ``Err`` asks for redelivery."""
        ...


@dataclass
class ShardBatch:
    """One batch as delivered by the transport for a shard."""

    shard_id: str
    records: Sequence[Any]
    batch_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class BatchOutcome:
    """What happened to one batch."""

    shard_id: str
    batch_id: str
    status: str  # "completed", "failed", "not_attempted"
    result: Result[Any] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


@dataclass
class PoolResult:
    """Aggregate result of one pool run."""

    outcomes: list[BatchOutcome]
    started_at: datetime
    completed_at: datetime

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "completed")

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")

    @property
    def shards_to_redeliver(self) -> list[str]:
        """Shards with a failed batch, in first-seen order."""
        seen: list[str] = []
        for outcome in self.outcomes:
            if outcome.status != "completed" and outcome.shard_id not in seen:
                seen.append(outcome.shard_id)
        return seen

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": len(self.outcomes),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "duration_seconds": (self.completed_at - self.started_at).total_seconds(),
            "shards_to_redeliver": self.shards_to_redeliver,
        }


class ShardWorkerPool:
    """Runs a consumer over batches from many shards.

    Parameters
    ----------
    consumer : Consumer
        The component handling each batch.
    max_workers : int
        Upper bound on shards processed at the same time.
    """

    def __init__(self, consumer: Consumer, max_workers: int = 8) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._consumer = consumer
        self._max_workers = max_workers

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def run(self, batches: Iterable[ShardBatch]) -> PoolResult:
        started_at = datetime.now(UTC)

        by_shard: dict[str, list[ShardBatch]] = {}
        order: list[ShardBatch] = []
        for batch in batches:
            by_shard.setdefault(batch.shard_id, []).append(batch)
            order.append(batch)

        results: dict[str, BatchOutcome] = {}

        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures = {
                executor.submit(self._run_shard, shard_id, shard_batches): shard_id
                for shard_id, shard_batches in by_shard.items()
            }
            for future in as_completed(futures):
                for outcome in future.result():
                    results[outcome.batch_id] = outcome

        completed_at = datetime.now(UTC)
        pool_result = PoolResult(
            outcomes=[results[b.batch_id] for b in order],
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info("pool.complete", **pool_result.to_dict())
        return pool_result

    def _run_shard(self, shard_id: str, batches: list[ShardBatch]) -> list[BatchOutcome]:
        outcomes: list[BatchOutcome] = []
        halted = False

        for batch in batches:
            if halted:
                outcomes.append(BatchOutcome(shard_id, batch.batch_id, "not_attempted"))
                continue

            started = datetime.now(UTC)
            with LogContext(shard_id=shard_id, batch_id=batch.batch_id):
                try:
                    result = self._consumer.handle_batch(batch.records)
                except Exception as e:
                    logger.exception("pool.batch_exception", error=str(e))
                    result = Err(e)

            status = "completed" if isinstance(result, Ok) else "failed"
            outcomes.append(
                BatchOutcome(
                    shard_id=shard_id,
                    batch_id=batch.batch_id,
                    status=status,
                    result=result,
                    started_at=started,
                    completed_at=datetime.now(UTC),
                )
            )
            if status == "failed":
                halted = True
                logger.warning("pool.shard_halted", shard_id=shard_id, batch_id=batch.batch_id)

        return outcomes


def group_by_shard(records: Iterable[Any], default_shard: str = DEFAULT_SHARD) -> list[ShardBatch]:
    """One batch per shard, delivery order kept within each.

    The shard is the ``eventID`` prefix (``shardId-...:<sequence>``) carried by
    stream handler events; records without one belong to ``default_shard``.
    """
    grouped: dict[str, list[Any]] = {}
    for record in records:
        event_id = record.get("eventID") if isinstance(record, Mapping) else None
        if isinstance(event_id, str) and ":" in event_id:
            shard_id = event_id.split(":", 1)[0]
        else:
            shard_id = default_shard
        grouped.setdefault(shard_id, []).append(record)
    return [ShardBatch(shard_id=shard_id, records=batch) for shard_id, batch in grouped.items()]
