"""
Clickstream models.

Client events arrive on the transport as base64-encoded JSON objects::

    {"kinesis": {"data": "eyJ1c2VySWQiOiAidS0xIiwgLi4ufQ==",
                 "partitionKey": "u-1",
                 "sequenceNumber": "4959..."}}

Decoded, an event looks like::

    {"userId": "u-1", "sessionId": "s-1", "eventType": "click",
     "timestamp": 1700000000000, "properties": {"itemId": "sku-9"}}

Unknown fields are kept and forwarded unchanged.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from orderstream.core.errors import MalformedRecord


class ClickEvent(BaseModel):
    """One client interaction event."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    user_id: str | int | None = Field(default=None, alias="userId")
    session_id: str | int | None = Field(default=None, alias="sessionId")
    event_type: str | None = Field(default=None, alias="eventType")
    timestamp: int | float | str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)

    @property
    def sent_at(self) -> datetime | None:
        """Event time; numeric timestamps are epoch milliseconds."""
        if self.timestamp is None:
            return None
        if isinstance(self.timestamp, (int, float)):
            return datetime.fromtimestamp(self.timestamp / 1000, tz=UTC)
        try:
            parsed = datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)

    def encode(self) -> bytes:
        """Compact JSON bytes, as forwarded to the batch sink."""
        return json.dumps(self.to_json_dict(), separators=(",", ":"), default=str).encode("utf-8")


def decode_payload(payload: bytes | str) -> ClickEvent:
    """Decode a base64 JSON payload.

    Raises:
        MalformedRecord: If the payload is not base64 JSON describing an event
    """
    try:
        raw = base64.b64decode(payload, validate=True)
        data = json.loads(raw)
    except (binascii.Error, ValueError) as e:
        raise MalformedRecord(f"Undecodable clickstream payload: {e}", cause=e) from e

    if not isinstance(data, dict):
        raise MalformedRecord(f"Clickstream payload must be a JSON object, got {type(data).__name__}")

    try:
        return ClickEvent.model_validate(data)
    except ValidationError as e:
        raise MalformedRecord(f"Invalid clickstream event: {e.error_count()} error(s)", cause=e) from e


def decode_record(record: Mapping[str, Any]) -> ClickEvent:
    """Decode one transport record (``record["kinesis"]["data"]``)."""
    kinesis = record.get("kinesis") if isinstance(record, Mapping) else None
    if not isinstance(kinesis, Mapping) or "data" not in kinesis:
        raise MalformedRecord("Transport record has no kinesis.data payload", path="kinesis.data")
    return decode_payload(kinesis["data"])


def record_key(record: Mapping[str, Any]) -> str | None:
    """Transport identity of a record, or ``None`` when it carries none.

    ``eventID`` (``<shard>:<sequence>``) when present, else the bare
    ``kinesis.sequenceNumber``.
    """
    if not isinstance(record, Mapping):
        return None
    event_id = record.get("eventID")
    if isinstance(event_id, str) and event_id:
        return event_id
    kinesis = record.get("kinesis")
    if isinstance(kinesis, Mapping):
        sequence = kinesis.get("sequenceNumber")
        if isinstance(sequence, str) and sequence:
            return sequence
    return None


def encode_record(
    event: Mapping[str, Any],
    partition_key: str | None = None,
    sequence_number: str | None = None,
) -> dict[str, Any]:
    """Build a transport record carrying ``event``. Used by replays and tests."""
    data = base64.b64encode(json.dumps(event).encode("utf-8")).decode("ascii")
    kinesis = {"data": data, "partitionKey": partition_key or str(event.get("userId", ""))}
    if sequence_number is not None:
        kinesis["sequenceNumber"] = sequence_number
    return {"kinesis": kinesis}


__all__ = ["ClickEvent", "decode_payload", "decode_record", "encode_record", "record_key"]
