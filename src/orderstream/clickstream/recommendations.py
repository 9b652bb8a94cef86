"""Recommendation-service clients for interaction events."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from botocore.exceptions import BotoCoreError, ClientError

from orderstream.clickstream.models import ClickEvent
from orderstream.core.errors import PermanentError, RetryableError
from orderstream.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class RecommendationClient(Protocol):
    def put_event(self, event: ClickEvent) -> None:
        """Record one interaction. Callers treat failures as best-effort."""
        ...


class NullRecommendationClient:
    """Used when no tracking id is configured."""

    def put_event(self, event: ClickEvent) -> None:
        logger.debug("recommendations.disabled", event_type=event.event_type)


class PersonalizeEventsClient:
    """boto3 ``personalize-events`` adapter.

    Args:
        client: boto3 ``personalize-events`` client
        tracking_id: Event tracker id
        clock: Fallback ``sentAt`` for events without a timestamp
    """

    def __init__(self, client: Any, tracking_id: str, clock=lambda: datetime.now(UTC)) -> None:
        if not tracking_id:
            raise ValueError("tracking_id must be non-empty")
        self._client = client
        self._tracking_id = tracking_id
        self._clock = clock

    def build_request(self, event: ClickEvent) -> dict[str, Any]:
        if event.session_id is None:
            raise PermanentError("Interaction event has no sessionId")
        request: dict[str, Any] = {
            "trackingId": self._tracking_id,
            "sessionId": str(event.session_id),
            "eventList": [
                {
                    "eventType": event.event_type,
                    "sentAt": event.sent_at or self._clock(),
                    "properties": json.dumps(event.properties, separators=(",", ":")),
                }
            ],
        }
        if event.user_id is not None:
            request["userId"] = str(event.user_id)
        return request

    def put_event(self, event: ClickEvent) -> None:
        request = self.build_request(event)
        try:
            self._client.put_events(**request)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code in ("InvalidInputException", "ResourceNotFoundException"):
                raise PermanentError(f"PutEvents rejected: {code}", cause=e) from e
            raise RetryableError(f"PutEvents failed: {code}", cause=e) from e
        except BotoCoreError as e:
            raise RetryableError(f"PutEvents transport error: {e}", cause=e) from e


__all__ = ["RecommendationClient", "NullRecommendationClient", "PersonalizeEventsClient"]
