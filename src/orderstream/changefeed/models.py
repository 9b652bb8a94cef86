"""
Change-feed models.

A ``MutationEvent`` is one row-level change read from the primary store's
change log. Raw stream records look like::

    {
      "eventName": "INSERT",
      "dynamodb": {
        "Keys": {"orderId": {"S": "o-1"}},
        "NewImage": {"orderId": {"S": "o-1"}, "total": {"N": "10"}},
        "SequenceNumber": "4421584500000000017450439091",
        "ApproximateCreationDateTime": 1700000000.0
      }
    }

``observed_at`` comes from ``ApproximateCreationDateTime`` so that a
redelivered record parses to the same event.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from orderstream.core.errors import MalformedRecord
from orderstream.records.normalizer import AttributeTree, normalize_value


class EventKind(str, Enum):
    """Kind of row-level change."""

    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"

    @property
    def carries_image(self) -> bool:
        return self in (EventKind.INSERT, EventKind.MODIFY)


@dataclass(frozen=True)
class MutationEvent:
    """One change-log record. Immutable."""

    event_kind: EventKind
    entity_id: str
    image: AttributeTree | None
    sequence_token: str
    observed_at: datetime
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)


def parse_stream_record(raw: Mapping[str, Any], partition_key: str = "orderId") -> MutationEvent:
    """Convert one raw change-log record to a ``MutationEvent``.

    Raises:
        MalformedRecord: If the record lacks the fields every change carries
    """
    if not isinstance(raw, Mapping):
        raise MalformedRecord(f"Change record must be a mapping, got {type(raw).__name__}")

    try:
        kind = EventKind(raw.get("eventName"))
    except ValueError:
        raise MalformedRecord(f"Unknown eventName {raw.get('eventName')!r}") from None

    change = raw.get("dynamodb")
    if not isinstance(change, Mapping):
        raise MalformedRecord("Change record has no 'dynamodb' section")

    sequence_token = change.get("SequenceNumber")
    if not sequence_token:
        raise MalformedRecord("Change record has no SequenceNumber")

    created = change.get("ApproximateCreationDateTime")
    if isinstance(created, bool) or not isinstance(created, (int, float)):
        raise MalformedRecord(
            "Change record has no ApproximateCreationDateTime",
            path="dynamodb.ApproximateCreationDateTime",
        ).with_context(sequence_token=str(sequence_token))
    observed_at = datetime.fromtimestamp(created, tz=UTC)

    image = change.get("NewImage")
    entity_id = _entity_id(change.get("Keys"), image, partition_key)
    if entity_id is None:
        raise MalformedRecord(
            f"Change record has no '{partition_key}' key attribute",
            path=f"dynamodb.Keys.{partition_key}",
        ).with_context(sequence_token=str(sequence_token))

    return MutationEvent(
        event_kind=kind,
        entity_id=entity_id,
        image=image,
        sequence_token=str(sequence_token),
        observed_at=observed_at,
        metadata={
            "event_id": raw.get("eventID"),
            "event_source_arn": raw.get("eventSourceARN"),
        },
    )


def parse_stream_records(
    raw_records: Iterable[Mapping[str, Any]], partition_key: str = "orderId"
) -> list[MutationEvent]:
    """Parse a whole batch; the first malformed record raises."""
    return [parse_stream_record(raw, partition_key) for raw in raw_records]


def _entity_id(keys: Any, image: Any, partition_key: str) -> str | None:
    for source in (keys, image):
        if isinstance(source, Mapping) and partition_key in source:
            value = normalize_value(source[partition_key])
            if value is not None and value != "":
                return str(value)
    return None


__all__ = ["EventKind", "MutationEvent", "parse_stream_record", "parse_stream_records"]
