"""
Workflow Starter - one workflow execution per accepted order mutation.

The execution name is derived from the entity id and the change-log time of
the mutation, so a redelivered event maps to the same name and the
orchestrator turns the second start into a no-op.

Example::

    starter = WorkflowStarter(orchestrator)
    result = starter.start("o-1", {"orderId": "o-1", "paymentStatus": "SUCCESS"},
                           observed_at=datetime(2024, 1, 1, tzinfo=UTC))
    result.unwrap().name   # "o-1-1704067200000"
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from orderstream.changefeed.models import MutationEvent
from orderstream.core.errors import OrderStreamError, PermanentError, RetryableError
from orderstream.core.hashing import compute_hash
from orderstream.core.logging import get_logger
from orderstream.core.result import Err, Ok, Result
from orderstream.orchestration.orchestrator import (
    MAX_EXECUTION_NAME_LENGTH,
    Orchestrator,
    StartOutcome,
)
from orderstream.records.normalizer import NormalizedDocument

logger = get_logger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")
_DIGEST_LENGTH = 12


def epoch_millis(moment: datetime) -> int:
    return round(moment.timestamp() * 1000)


def execution_name(entity_id: str, observed_at: datetime) -> str:
    """``{entity_id}-{epoch_millis}``, restricted to ``[A-Za-z0-9_-]{1,80}``.

    An id that had to be rewritten or cut gets a hash of the original id
    appended, so two distinct ids never share a name.
    """
    suffix = f"-{epoch_millis(observed_at)}"
    ident = _UNSAFE.sub("_", entity_id)

    if ident != entity_id or not ident or len(ident) + len(suffix) > MAX_EXECUTION_NAME_LENGTH:
        digest = compute_hash(entity_id, length=_DIGEST_LENGTH)
        room = MAX_EXECUTION_NAME_LENGTH - len(suffix) - len(digest) - 1
        ident = f"{ident[:room]}-{digest}" if ident else digest

    return f"{ident}{suffix}"


def execution_input(
    entity_id: str, doc: NormalizedDocument, observed_at: datetime
) -> dict[str, Any]:
    """Flat order fields plus ``orderId``, ``orderData`` and ``timestamp``."""
    return {
        **doc,
        "orderId": entity_id,
        "orderData": doc,
        "timestamp": observed_at.isoformat(),
    }


class WorkflowStarter:
    """Starts the order workflow for accepted mutations.

    Also usable directly as a change-dispatcher sink.
    """

    name = "workflow"

    def __init__(self, orchestrator: Orchestrator) -> None:
        self._orchestrator = orchestrator

    def start(
        self, entity_id: str, doc: NormalizedDocument, observed_at: datetime
    ) -> Result[StartOutcome]:
        name = execution_name(entity_id, observed_at)
        payload = execution_input(entity_id, doc, observed_at)

        try:
            outcome = self._orchestrator.start_execution(name, payload)
        except PermanentError as e:
            logger.warning("starter.rejected", execution_name=name, entity_id=entity_id, error=str(e))
            return Err(e.with_context(entity_id=entity_id, sink=self.name))
        except Exception as e:
            if isinstance(e, RetryableError):
                error = e
            else:
                category = e.category if isinstance(e, OrderStreamError) else None
                error = RetryableError(f"Could not start {name}: {e}", category=category, cause=e)
            logger.warning("starter.failed", execution_name=name, entity_id=entity_id, error=str(e))
            return Err(error.with_context(entity_id=entity_id, sink=self.name, execution_name=name))

        if outcome.already_existed:
            logger.info("starter.already_started", execution_name=name, entity_id=entity_id)
        else:
            logger.info("starter.started", execution_name=name, entity_id=entity_id)
        return Ok(outcome)

    def __call__(
        self, entity_id: str, document: NormalizedDocument, event: MutationEvent
    ) -> Result[StartOutcome]:
        return self.start(entity_id, document, event.observed_at)


__all__ = ["WorkflowStarter", "epoch_millis", "execution_name", "execution_input"]
