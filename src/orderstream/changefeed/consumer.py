"""Transport-facing consumer for change-log batches."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from orderstream.changefeed.dispatcher import (
    ChangeDispatcher,
    DispatchResult,
    OutcomeStatus,
    SinkOutcome,
)
from orderstream.changefeed.models import MutationEvent, parse_stream_record
from orderstream.core.errors import MalformedRecord, RetryableError
from orderstream.core.logging import get_logger
from orderstream.core.result import Err, Ok, Result

logger = get_logger(__name__)


class ChangeFeedConsumer:
    """Parses raw change records and dispatches them.

    Raw records that cannot be parsed are reported as malformed outcomes and
    never redelivered. ``handle_batch`` returns ``Err`` only when a sink
    asked for redelivery.
    """

    def __init__(self, dispatcher: ChangeDispatcher, partition_key: str = "orderId") -> None:
        self._dispatcher = dispatcher
        self._partition_key = partition_key

    def process(self, batch: Sequence[Mapping[str, Any]]) -> DispatchResult:
        events: list[MutationEvent] = []
        rejected: list[SinkOutcome] = []

        for index, raw in enumerate(batch):
            try:
                events.append(parse_stream_record(raw, self._partition_key))
            except MalformedRecord as e:
                e.with_context(record_index=index)
                logger.warning("changefeed.unparseable_record", **e.to_dict())
                rejected.append(SinkOutcome.failure(None, None, e.context.sequence_token, e))

        result = self._dispatcher.dispatch(events)
        result.outcomes[:0] = rejected
        return result

    def handle_batch(self, batch: Sequence[Mapping[str, Any]]) -> Result[DispatchResult]:
        result = self.process(batch)
        if result.should_redeliver:
            failed = [o.sink for o in result.failures if o.status is OutcomeStatus.RETRYABLE]
            return Err(
                RetryableError(f"{len(failed)} sink call(s) need redelivery").with_context(
                    sinks=sorted({s for s in failed if s}),
                    batch_size=len(batch),
                )
            )
        return Ok(result)


__all__ = ["ChangeFeedConsumer"]
