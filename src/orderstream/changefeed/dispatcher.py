"""
Change Dispatcher - fans store mutations out to independent sinks.

Manifesto:
    A store mutation must reach every interested downstream system, and a
    slow or broken downstream must not keep the others from seeing it. The
    dispatcher normalizes each image exactly once, hands the document to
    every sink, and reports what happened per event and per sink. It never
    raises for a sink failure; the caller decides from the report whether
    the transport should redeliver.

Architecture:
    ::

        batch ─► for event in delivery order
                   ├── REMOVE            → skipped
                   ├── malformed image   → 1 outcome (PERMANENT, no sinks)
                   └── INSERT / MODIFY
                         doc = normalize(image)
                         for sink in sinks:
                             sink(entity_id, copy(doc), event) → SinkOutcome

        DispatchResult
          ├── outcomes[]           (sink, entity_id, sequence_token, status, error)
          ├── skipped[]            (sequence tokens of REMOVE events)
          └── should_redeliver     any outcome RETRYABLE

Guardrails:
    ❌ Stopping at the first failing sink
    ✅ Every sink called for every accepted event

    ❌ Redelivering for a validation failure
    ✅ Only RETRYABLE outcomes request redelivery

Tags:
    dispatcher, fan-out, change-feed, orderstream
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from orderstream.changefeed.models import MutationEvent
from orderstream.core.errors import MalformedRecord, error_kind, is_retryable
from orderstream.core.logging import get_logger
from orderstream.core.result import Err, Result
from orderstream.records.normalizer import NormalizedDocument, normalize

logger = get_logger(__name__)


@runtime_checkable
class Sink(Protocol):
    """A downstream consumer of normalized documents.

    Sinks must be idempotent per entity id: the same event may arrive again
    after a redelivery.
    """

    name: str

    def __call__(
        self, entity_id: str, document: NormalizedDocument, event: MutationEvent
    ) -> Result[Any]: ...


class OutcomeStatus(str, Enum):
    OK = "ok"
    RETRYABLE = "retryable"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class SinkOutcome:
    """What one sink did with one event."""

    sink: str | None
    entity_id: str | None
    sequence_token: str | None
    status: OutcomeStatus
    error: Exception | None = None

    @classmethod
    def failure(
        cls,
        sink: str | None,
        entity_id: str | None,
        sequence_token: str | None,
        error: Exception,
    ) -> SinkOutcome:
        status = OutcomeStatus.RETRYABLE if is_retryable(error) else OutcomeStatus.PERMANENT
        return cls(sink, entity_id, sequence_token, status, error)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "sink": self.sink,
            "entity_id": self.entity_id,
            "sequence_token": self.sequence_token,
            "status": self.status.value,
        }
        if self.error is not None:
            result["error_kind"] = error_kind(self.error)
            result["error"] = str(self.error)
        return result


@dataclass
class DispatchResult:
    """Per-event, per-sink report for one batch."""

    outcomes: list[SinkOutcome] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def should_redeliver(self) -> bool:
        return any(o.status is OutcomeStatus.RETRYABLE for o in self.outcomes)

    @property
    def failures(self) -> list[SinkOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def add(self, outcome: SinkOutcome) -> None:
        self.outcomes.append(outcome)

    def to_dict(self) -> dict[str, Any]:
        counts = {status.value: 0 for status in OutcomeStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return {
            **counts,
            "skipped": len(self.skipped),
            "should_redeliver": self.should_redeliver,
        }


class ChangeDispatcher:
    """
    Routes each accepted mutation to every registered sink.

    Stateless between calls; events are processed sequentially in delivery
    order.

    Example:
        >>> dispatcher = ChangeDispatcher([search_bridge, workflow_starter])
        >>> result = dispatcher.dispatch(events)
        >>> if result.should_redeliver:
        ...     raise RetryableError("redeliver batch")
    """

    def __init__(self, sinks: Sequence[Sink]) -> None:
        names = [sink.name for sink in sinks]
        if len(set(names)) != len(names):
            raise ValueError(f"Sink names must be unique: {names}")
        self._sinks = list(sinks)

    @property
    def sinks(self) -> list[Sink]:
        return list(self._sinks)

    def dispatch(self, batch: Iterable[MutationEvent]) -> DispatchResult:
        result = DispatchResult()

        for event in batch:
            if not event.event_kind.carries_image:
                result.skipped.append(event.sequence_token)
                logger.debug(
                    "dispatch.skipped",
                    entity_id=event.entity_id,
                    event_kind=event.event_kind.value,
                )
                continue

            try:
                if event.image is None:
                    raise MalformedRecord(f"{event.event_kind.value} event carries no image")
                document = normalize(event.image)
            except MalformedRecord as e:
                e.with_context(entity_id=event.entity_id, sequence_token=event.sequence_token)
                logger.warning("dispatch.malformed_record", **e.to_dict())
                result.add(SinkOutcome.failure(None, event.entity_id, event.sequence_token, e))
                continue

            for sink in self._sinks:
                result.add(self._call_sink(sink, event, document))

        logger.info("dispatch.complete", **result.to_dict())
        return result

    def _call_sink(
        self, sink: Sink, event: MutationEvent, document: NormalizedDocument
    ) -> SinkOutcome:
        try:
            sink_result = sink(event.entity_id, copy.deepcopy(document), event)
        except Exception as e:
            sink_result = Err(e)

        if sink_result.is_ok():
            return SinkOutcome(sink.name, event.entity_id, event.sequence_token, OutcomeStatus.OK)

        outcome = SinkOutcome.failure(
            sink.name, event.entity_id, event.sequence_token, sink_result.error
        )
        logger.warning(
            "dispatch.sink_failed",
            sink=sink.name,
            entity_id=event.entity_id,
            sequence_token=event.sequence_token,
            status=outcome.status.value,
            error_kind=error_kind(sink_result.error),
            error=str(sink_result.error),
        )
        return outcome


__all__ = ["Sink", "OutcomeStatus", "SinkOutcome", "DispatchResult", "ChangeDispatcher"]
