"""
Buffered batch sink - accumulates records and writes them as compressed
objects.

Manifesto:
    Writing one object per click is slow and expensive; holding clicks
    forever loses them. The sink buffers records and hands the whole buffer
    off when either buffering hint is reached: the buffered size crosses the
    size threshold, or the oldest buffered record has waited the full
    interval. A hand-off never drops records. A write that keeps failing is
    diverted to the error-output prefix instead.

Architecture:
    ::

        append(record) ──► buffer (+size) ── size ≥ threshold ──► flush()
        poll()         ──► oldest waited ≥ interval ──────────► flush()
        start()        ──► ticker thread calling poll() every tick

        flush():
            with lock: batch, buffer = buffer, []        (atomic hand-off)
            body = gzip(b"\\n".join(batch) + b"\\n")
            put clickstream/year=YYYY/month=MM/day=DD/<stream>-<ts>-<uuid>.gz
              └── retried with backoff
                    └── exhausted / rejected:
                        put errors/<failure-type>/year=YYYY/month=MM/day=DD/...
                          └── still failing: batch goes back to the buffer

Guardrails:
    ❌ Writing while holding the buffer lock
    ✅ Swap under the lock, write outside it

    ❌ Flushing an empty buffer on every tick
    ✅ An empty buffer never produces an object

Tags:
    buffering, batching, object-storage, gzip, orderstream
"""

from __future__ import annotations

import gzip
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from orderstream.clickstream.storage import ObjectStore
from orderstream.core.errors import error_kind, is_retryable
from orderstream.core.logging import get_logger
from orderstream.core.settings import OrderStreamSettings
from orderstream.execution.retry import ExponentialBackoff, RetryContext, RetryStrategy

logger = get_logger(__name__)

MEGABYTE = 1024 * 1024

DELIVERY_FAILED = "delivery-failed"
DELIVERY_REJECTED = "delivery-rejected"


@dataclass(frozen=True)
class BufferingHints:
    """Flush triggers: whichever is reached first."""

    interval_seconds: float = 60.0
    size_threshold_bytes: int = MEGABYTE

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self.size_threshold_bytes <= 0:
            raise ValueError("size_threshold_bytes must be positive")

    @classmethod
    def from_mb(cls, interval_seconds: float = 60.0, size_threshold_mb: float = 1.0) -> BufferingHints:
        return cls(interval_seconds, int(size_threshold_mb * MEGABYTE))


@dataclass(frozen=True)
class FlushReport:
    """Outcome of one buffer hand-off."""

    status: str  # "delivered", "error_output", "requeued"
    key: str | None
    records: int
    size_bytes: int
    attempts: int
    error_kind: str | None = None


class BufferedBatchSink:
    """
    Size- and time-triggered buffer in front of an object store.

    Args:
        store: Destination object store
        stream_name: Delivery-stream name, used in object keys
        hints: Buffering hints
        prefix: Key prefix for delivered objects
        error_prefix: Key prefix for error output
        retry: Strategy for object writes
        clock: Monotonic clock for the interval trigger
        wall_clock: UTC clock for object keys
        sleep: Sleeper between write attempts
    """

    def __init__(
        self,
        store: ObjectStore,
        stream_name: str = "clickstream",
        hints: BufferingHints | None = None,
        *,
        prefix: str = "clickstream",
        error_prefix: str = "errors",
        retry: RetryStrategy | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._stream = stream_name
        self._hints = hints or BufferingHints()
        self._prefix = prefix.strip("/")
        self._error_prefix = error_prefix.strip("/")
        self._retry = retry or ExponentialBackoff(max_retries=3, base_delay=1.0, max_delay=30.0)
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep

        self._lock = threading.Lock()
        self._buffer: list[bytes] = []
        self._size = 0
        self._first_at: float | None = None

        self._stop = threading.Event()
        self._ticker: threading.Thread | None = None
        self._closed = False

    @classmethod
    def from_settings(cls, settings: OrderStreamSettings, store: ObjectStore, **kwargs) -> BufferedBatchSink:
        return cls(
            store,
            stream_name=settings.delivery_stream,
            hints=BufferingHints(settings.buffer_interval_s, settings.buffer_size_threshold_bytes),
            retry=ExponentialBackoff(
                max_retries=settings.flush_max_retries,
                base_delay=settings.flush_base_delay_s,
            ),
            **kwargs,
        )

    @property
    def hints(self) -> BufferingHints:
        return self._hints

    @property
    def pending_records(self) -> int:
        with self._lock:
            return len(self._buffer)

    @property
    def pending_bytes(self) -> int:
        with self._lock:
            return self._size

    # =========================================================================
    # Buffering
    # =========================================================================

    def append(self, record: bytes) -> FlushReport | None:
        """Buffer one record; flushes at once if the size threshold is reached."""
        with self._lock:
            if self._closed:
                raise RuntimeError("BufferedBatchSink is closed")
            if not self._buffer:
                self._first_at = self._clock()
            self._buffer.append(bytes(record))
            self._size += len(record) + 1
            full = self._size >= self._hints.size_threshold_bytes
        if full:
            return self.flush()
        return None

    def poll(self) -> FlushReport | None:
        """Flush if the oldest buffered record has waited the full interval."""
        with self._lock:
            due = (
                self._first_at is not None
                and self._clock() - self._first_at >= self._hints.interval_seconds
            )
        if due:
            return self.flush()
        return None

    def flush(self) -> FlushReport | None:
        """Hand the current buffer off to the store. ``None`` if empty."""
        with self._lock:
            if not self._buffer:
                return None
            batch, size = self._buffer, self._size
            self._buffer, self._size, self._first_at = [], 0, None

        return self._write(batch, size)

    # =========================================================================
    # Ticker
    # =========================================================================

    def start(self, tick_seconds: float = 1.0) -> None:
        """Start the background thread driving the interval trigger."""
        if self._ticker is not None:
            return
        self._stop.clear()
        self._ticker = threading.Thread(
            target=self._tick, args=(tick_seconds,), name=f"batch-sink-{self._stream}", daemon=True
        )
        self._ticker.start()

    def close(self) -> FlushReport | None:
        """Stop the ticker and flush what is left.

        Appends are refused from the moment the sink is marked closed, so the
        final flush hands off every accepted record.
        """
        with self._lock:
            if self._closed:
                return None
            self._closed = True
        self._stop.set()
        if self._ticker is not None:
            self._ticker.join()
            self._ticker = None
        return self.flush()

    def _tick(self, tick_seconds: float) -> None:
        while not self._stop.wait(tick_seconds):
            try:
                self.poll()
            except Exception:
                logger.exception("batch_sink.tick_failed", stream=self._stream)

    # =========================================================================
    # Writing
    # =========================================================================

    def _write(self, batch: list[bytes], size: int) -> FlushReport:
        body = gzip.compress(b"\n".join(batch) + b"\n")
        now = self._wall_clock()

        key = self._object_key(self._prefix, now)
        ctx = RetryContext(self._retry, on_retry=self._log_retry, sleep=self._sleep)
        try:
            ctx.run(self._store.put, key, body, "application/x-ndjson", "gzip")
        except Exception as e:
            failure_type = DELIVERY_FAILED if is_retryable(e) else DELIVERY_REJECTED
            logger.error(
                "batch_sink.delivery_failed",
                key=key,
                records=len(batch),
                attempts=ctx.attempts,
                failure_type=failure_type,
                error_kind=error_kind(e),
                error=str(e),
            )
            return self._write_error_output(batch, size, body, now, failure_type, ctx.attempts, e)

        logger.info("batch_sink.flushed", key=key, records=len(batch), size_bytes=size)
        return FlushReport("delivered", key, len(batch), size, ctx.attempts)

    def _write_error_output(
        self,
        batch: list[bytes],
        size: int,
        body: bytes,
        now: datetime,
        failure_type: str,
        attempts: int,
        cause: Exception,
    ) -> FlushReport:
        key = self._object_key(f"{self._error_prefix}/{failure_type}", now)
        ctx = RetryContext(self._retry, on_retry=self._log_retry, sleep=self._sleep)
        try:
            ctx.run(self._store.put, key, body, "application/x-ndjson", "gzip")
        except Exception as e:
            self._requeue(batch, size)
            logger.error(
                "batch_sink.requeued",
                records=len(batch),
                error_kind=error_kind(e),
                error=str(e),
            )
            return FlushReport("requeued", None, len(batch), size, attempts + ctx.attempts, error_kind(e))

        logger.warning("batch_sink.error_output", key=key, records=len(batch))
        return FlushReport(
            "error_output", key, len(batch), size, attempts + ctx.attempts, error_kind(cause)
        )

    def _requeue(self, batch: list[bytes], size: int) -> None:
        with self._lock:
            self._buffer[:0] = batch
            self._size += size
            self._first_at = self._clock()

    def _object_key(self, prefix: str, now: datetime) -> str:
        return (
            f"{prefix}/year={now:%Y}/month={now:%m}/day={now:%d}/"
            f"{self._stream}-{now:%Y-%m-%d-%H-%M-%S}-{uuid.uuid4()}.gz"
        )

    def _log_retry(self, attempt: int, error: Exception, delay: float) -> None:
        logger.warning(
            "batch_sink.write_retry",
            attempt=attempt,
            delay=round(delay, 3),
            error_kind=error_kind(error),
            error=str(error),
        )

    def __enter__(self) -> BufferedBatchSink:
        return self

    def __exit__(self, *args) -> None:
        self.close()


__all__ = [
    "BufferingHints",
    "BufferedBatchSink",
    "FlushReport",
    "DELIVERY_FAILED",
    "DELIVERY_REJECTED",
]
