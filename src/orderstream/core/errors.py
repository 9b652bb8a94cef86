"""
Structured error types for orderstream.

Every failure that crosses a component boundary is one of a small set of
typed errors. The type carries the retry decision so that transports,
dispatchers and the workflow engine never have to guess from a message.

Manifesto:
    - **Typed taxonomy:** malformed, retryable, permanent, timeout
    - **Explicit retry semantics:** each error knows if it is retryable
    - **Rich context:** errors carry entity ids, sinks, execution names
    - **Error chaining:** the underlying exception is kept as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                      OrderStreamError                        │
        │      (category, retryable, retry_after, context, cause)      │
        ├──────────────────────────────────────────────────────────────┤
        │                                                              │
        │  RetryableError      PermanentError       MalformedRecord    │
        │  (retryable=True)    (VALIDATION)         (PARSE)            │
        │                                                              │
        │  WorkflowTimeout     BatchAborted         ConfigError        │
        │  (TIMEOUT)           (TRANSPORT)          (CONFIG)           │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = RetryableError("search index throttled", retry_after=5)
    >>> error.retryable
    True
    >>> error.with_context(sink="search", entity_id="o-1").context.sink
    'search'

Guardrails:
    ❌ DON'T: Raise bare ``Exception`` from a sink
    ✅ DO: Raise ``RetryableError`` or ``PermanentError`` with ``cause=``

    ❌ DON'T: Retry ``MalformedRecord`` or ``PermanentError``
    ✅ DO: Log, report, and move on

Tags:
    error-handling, exception-hierarchy, retry-logic, orderstream
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"           # Connection, throttling, 5xx
    STORAGE = "STORAGE"           # Object store writes
    PARSE = "PARSE"               # Malformed attribute trees, undecodable records
    VALIDATION = "VALIDATION"     # Rejected by a downstream validator
    CONFIG = "CONFIG"             # Missing or invalid settings
    TIMEOUT = "TIMEOUT"           # Wall-clock ceiling exceeded
    TRANSPORT = "TRANSPORT"       # Batch must be redelivered
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        entity_id: Domain entity (order id) the error relates to
        sink: Name of the sink that failed
        execution_name: Workflow execution name
        state: Workflow state in which the error occurred
        sequence_token: Change-log sequence token of the event
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    entity_id: str | None = None
    sink: str | None = None
    execution_name: str | None = None
    state: str | None = None
    sequence_token: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["entity_id", "sink", "execution_name", "state",
                    "sequence_token", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class OrderStreamError(Exception):
    """
    Base exception for all orderstream errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers may
    override either per instance.

    Examples:
        >>> error = OrderStreamError("unexpected state")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False
    # Short, stable name of the error kind used in reports and error paths
    kind: str = "Internal"

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> OrderStreamError:
        """
        Add context to this error (fluent API).

        Usage:
            raise PermanentError("mapping rejected").with_context(
                sink="search", entity_id="o-1"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "kind": self.kind,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TAXONOMY
# =============================================================================


class RetryableError(OrderStreamError):
    """
    Transient downstream failure: network, throttling, service unavailable.

    The transport redelivers the batch; the same operation called again has a
    reasonable chance of succeeding.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True
    kind = "Retryable"


class PermanentError(OrderStreamError):
    """
    Validation or schema failure reported by a downstream system.

    Never retryable - the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False
    kind = "Permanent"


class MalformedRecord(OrderStreamError):
    """An attribute tree or transport record that cannot be decoded.

    Skip-and-log; never retried.
    """

    default_category = ErrorCategory.PARSE
    default_retryable = False
    kind = "MalformedRecord"

    def __init__(self, message: str, *, path: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.path = path

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.path:
            result["path"] = self.path
        return result


class WorkflowTimeout(OrderStreamError):
    """A workflow execution exceeded its wall-clock ceiling."""

    default_category = ErrorCategory.TIMEOUT
    default_retryable = False
    kind = "Timeout"

    def __init__(self, message: str, *, timeout_seconds: float, elapsed: float | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.timeout_seconds = timeout_seconds
        self.elapsed = elapsed


class BatchAborted(OrderStreamError):
    """
    Processing of a transport batch stopped part-way.

    Raised to the transport so it redelivers the whole batch.

    Attributes:
        failed_index: Index of the record that could not be processed
        forwarded: Number of records already forwarded before the abort
    """

    default_category = ErrorCategory.TRANSPORT
    default_retryable = True
    kind = "BatchAborted"

    def __init__(self, message: str, *, failed_index: int, forwarded: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.failed_index = failed_index
        self.forwarded = forwarded


class ConfigError(OrderStreamError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False
    kind = "Config"


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, OrderStreamError):
        return error.retryable

    # Connection-level failures from the standard library are transient
    return isinstance(error, (ConnectionError, TimeoutError))


def error_kind(error: BaseException) -> str:
    """Short error-kind label used in reports and error-output paths."""
    if isinstance(error, OrderStreamError):
        return error.kind
    return type(error).__name__


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "OrderStreamError",
    "RetryableError",
    "PermanentError",
    "MalformedRecord",
    "WorkflowTimeout",
    "BatchAborted",
    "ConfigError",
    "is_retryable",
    "error_kind",
]
