"""
orderstream.core - shared primitives.

Errors, results, logging, settings and client handles used by every
component of the pipeline.
"""

from orderstream.core.errors import (
    BatchAborted,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    MalformedRecord,
    OrderStreamError,
    PermanentError,
    RetryableError,
    WorkflowTimeout,
    error_kind,
    is_retryable,
)
from orderstream.core.hashing import compute_hash
from orderstream.core.idempotency import RecentKeys
from orderstream.core.logging import LogContext, configure_logging, get_logger
from orderstream.core.result import Err, Ok, Result, try_result

__all__ = [
    # errors
    "BatchAborted",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "MalformedRecord",
    "OrderStreamError",
    "PermanentError",
    "RetryableError",
    "WorkflowTimeout",
    "error_kind",
    "is_retryable",
    # hashing
    "compute_hash",
    # idempotency
    "RecentKeys",
    # logging
    "LogContext",
    "configure_logging",
    "get_logger",
    # result
    "Err",
    "Ok",
    "Result",
    "try_result",
]
