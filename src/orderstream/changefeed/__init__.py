"""
orderstream.changefeed - store mutations to downstream sinks.

Exports:
    MutationEvent, EventKind: Parsed change-log records
    ChangeDispatcher: Fan-out to independent sinks
    ChangeFeedConsumer: Transport-facing batch handler
"""

from orderstream.changefeed.consumer import ChangeFeedConsumer
from orderstream.changefeed.dispatcher import (
    ChangeDispatcher,
    DispatchResult,
    OutcomeStatus,
    Sink,
    SinkOutcome,
)
from orderstream.changefeed.models import (
    EventKind,
    MutationEvent,
    parse_stream_record,
    parse_stream_records,
)

__all__ = [
    "ChangeDispatcher",
    "ChangeFeedConsumer",
    "DispatchResult",
    "EventKind",
    "MutationEvent",
    "OutcomeStatus",
    "Sink",
    "SinkOutcome",
    "parse_stream_record",
    "parse_stream_records",
]
