"""
Search Indexing Bridge - mirrors order documents into the search index.

WHY
───
The search index is a read model of the primary store. Each accepted
mutation replaces the whole document keyed by the entity id, so replaying an
event is harmless and the index converges on the last delivered image.

ARCHITECTURE
────────────
::

    SearchIndexBridge(client, index="orders")
      ├── .upsert(entity_id, doc)      PUT /{index}/_doc/{id}  body = doc + {"id"}
      └── .__call__(entity_id, doc, e) dispatcher sink adapter

    transport error / timeout / 429 / 5xx → RetryableError
    other 4xx (mapping, parse)            → PermanentError

A stale redelivery can overwrite a newer image; the index carries no
version guard.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from orderstream.changefeed.models import MutationEvent
from orderstream.core.errors import ErrorCategory, PermanentError, RetryableError
from orderstream.core.logging import get_logger
from orderstream.core.result import Err, Ok, Result
from orderstream.records.normalizer import NormalizedDocument

logger = get_logger(__name__)

_RETRYABLE_STATUS = frozenset({408, 429})


class SearchIndexBridge:
    """Idempotent document upserts against a REST search index."""

    name = "search"

    def __init__(self, client: httpx.Client, index: str = "orders") -> None:
        if not index:
            raise ValueError("index must be non-empty")
        self._client = client
        self._index = index

    @property
    def index(self) -> str:
        return self._index

    def document_path(self, entity_id: str) -> str:
        return f"/{self._index}/_doc/{quote(entity_id, safe='')}"

    def upsert(self, entity_id: str, doc: NormalizedDocument) -> Result[dict[str, Any]]:
        """Replace the document stored under ``entity_id``."""
        body = {**doc, "id": entity_id}
        path = self.document_path(entity_id)

        try:
            response = self._client.put(path, json=body)
        except httpx.TimeoutException as e:
            return Err(
                RetryableError(
                    f"Timed out indexing {entity_id}", category=ErrorCategory.TIMEOUT, cause=e
                ).with_context(entity_id=entity_id, sink=self.name)
            )
        except httpx.TransportError as e:
            return Err(
                RetryableError(f"Transport error indexing {entity_id}: {e}", cause=e).with_context(
                    entity_id=entity_id, sink=self.name
                )
            )

        status = response.status_code
        if response.is_success:
            payload = _json_or_empty(response)
            logger.debug(
                "search.indexed",
                entity_id=entity_id,
                index=self._index,
                result=payload.get("result"),
            )
            return Ok(
                {
                    "id": entity_id,
                    "index": self._index,
                    "result": payload.get("result"),
                    "version": payload.get("_version"),
                }
            )

        if status in _RETRYABLE_STATUS or status >= 500:
            return Err(
                RetryableError(
                    f"Search index returned {status} for {entity_id}",
                    retry_after=_retry_after(response),
                ).with_context(entity_id=entity_id, sink=self.name, http_status=status)
            )

        return Err(
            PermanentError(
                f"Search index rejected {entity_id} with {status}: {_error_reason(response)}"
            ).with_context(entity_id=entity_id, sink=self.name, http_status=status)
        )

    def __call__(
        self, entity_id: str, document: NormalizedDocument, event: MutationEvent
    ) -> Result[dict[str, Any]]:
        return self.upsert(entity_id, document)


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _error_reason(response: httpx.Response) -> str:
    error = _json_or_empty(response).get("error")
    if isinstance(error, dict):
        return str(error.get("reason") or error.get("type") or error)
    if error:
        return str(error)
    return response.text[:200]


__all__ = ["SearchIndexBridge"]
