"""
Clickstream Fan-out Processor.

WHY
───
Every client event feeds two consumers: the recommendation service (only
for events with an ``eventType``) and the analytics archive (always). The
recommendation call is best-effort. Archiving is not: if a record cannot be
decoded, the rest of the batch is left alone and the transport redelivers
the whole batch. Records of a redelivered batch that were already forwarded
are recognised by their transport identity and skipped.

ARCHITECTURE
────────────
::

    ClickstreamProcessor(recommendations, sink, forwarded)
      └── .process(batch) -> ProcessResult
            for i, record in enumerate(batch):
                if record_key(record) was forwarded:   → skipped as duplicate
                event = decode_record(record)          ← failure: BatchAborted(i, forwarded)
                if event.event_type:
                    recommendations.put_event(event)   ← failure: logged only
                sink.append(event.encode())            ← failure: BatchAborted(i, forwarded)
                remember record_key(record)

    ClickstreamConsumer(processor).handle_batch(batch) -> Ok(ProcessResult) | Err(BatchAborted)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from orderstream.clickstream.models import ClickEvent, decode_record, record_key
from orderstream.clickstream.recommendations import RecommendationClient
from orderstream.core.errors import BatchAborted, error_kind
from orderstream.core.idempotency import RecentKeys
from orderstream.core.logging import get_logger
from orderstream.core.result import Err, Ok, Result

logger = get_logger(__name__)


class RecordSink(Protocol):
    def append(self, record: bytes) -> Any: ...


@dataclass
class ProcessResult:
    received: int = 0
    forwarded: int = 0
    recommended: int = 0
    recommendation_failures: int = 0
    duplicates: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "received": self.received,
            "forwarded": self.forwarded,
            "recommended": self.recommended,
            "recommendation_failures": self.recommendation_failures,
            "duplicates": self.duplicates,
        }

    def merge(self, other: ProcessResult) -> None:
        self.received += other.received
        self.forwarded += other.forwarded
        self.recommended += other.recommended
        self.recommendation_failures += other.recommendation_failures
        self.duplicates += other.duplicates


class ClickstreamProcessor:
    """
    Decodes, recommends and forwards click records.

    Args:
        recommendations: Best-effort recommendation client
        sink: Destination of forwarded records
        forwarded: Transport identities of recently forwarded records,
            shared across batches so redeliveries are not forwarded twice
    """

    def __init__(
        self,
        recommendations: RecommendationClient,
        sink: RecordSink,
        forwarded: RecentKeys | None = None,
    ) -> None:
        self._recommendations = recommendations
        self._sink = sink
        self._forwarded = forwarded if forwarded is not None else RecentKeys()

    def process(self, batch: Sequence[Mapping[str, Any]]) -> ProcessResult:
        """Fan a transport batch out, in order.

        Raises:
            BatchAborted: A record could not be decoded or forwarded
        """
        result = ProcessResult(received=len(batch))

        for index, record in enumerate(batch):
            key = record_key(record)
            if key is not None and self._forwarded.seen(key):
                result.duplicates += 1
                logger.debug("clickstream.duplicate_skipped", record_key=key)
                continue
            try:
                event = decode_record(record)
                if event.event_type:
                    self._recommend(event, result)
                self._sink.append(event.encode())
            except Exception as e:
                logger.error(
                    "clickstream.batch_aborted",
                    failed_index=index,
                    forwarded=result.forwarded,
                    remaining=len(batch) - index,
                    error_kind=error_kind(e),
                    error=str(e),
                )
                raise BatchAborted(
                    f"Record {index} of {len(batch)} failed: {e}",
                    failed_index=index,
                    forwarded=result.forwarded,
                    cause=e,
                ) from e
            result.forwarded += 1
            if key is not None:
                self._forwarded.add(key)

        logger.info("clickstream.processed", **result.to_dict())
        return result

    def _recommend(self, event: ClickEvent, result: ProcessResult) -> None:
        try:
            self._recommendations.put_event(event)
        except Exception as e:
            result.recommendation_failures += 1
            logger.warning(
                "clickstream.recommendation_failed",
                event_type=event.event_type,
                error_kind=error_kind(e),
                error=str(e),
            )
            return
        result.recommended += 1


class ClickstreamConsumer:
    """Transport-facing wrapper: ``BatchAborted`` becomes ``Err``."""

    def __init__(self, processor: ClickstreamProcessor) -> None:
        self._processor = processor

    def handle_batch(self, batch: Sequence[Mapping[str, Any]]) -> Result[ProcessResult]:
        try:
            return Ok(self._processor.process(batch))
        except BatchAborted as e:
            return Err(e)


__all__ = ["RecordSink", "ProcessResult", "ClickstreamProcessor", "ClickstreamConsumer"]
