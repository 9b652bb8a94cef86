"""Process settings for orderstream.

Every deployable piece (change-feed consumer, clickstream consumer, CLI)
reads the same ``OrderStreamSettings`` so field names and defaults stay
consistent.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not mid-batch
    - **Environment-driven:** Reads ``ORDERSTREAM_*`` env vars and ``.env``
    - **Sensible defaults:** The buffering hints and workflow timeout match
      the production delivery stream and state machine

Examples:
    >>> from orderstream.core.settings import OrderStreamSettings
    >>> settings = OrderStreamSettings(search_endpoint="https://search:443")
    >>> settings.buffer_size_threshold_mb
    1.0

Tags:
    settings, configuration, pydantic, environment, orderstream
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrderStreamSettings(BaseSettings):
    """Settings shared by all orderstream entry points.

    Fields
    ──────
    service_name        : Service name stamped on every log line
    log_level           : Structlog log level
    region              : Cloud region for boto3 clients
    partition_key       : Attribute holding the entity id in change records
    search_endpoint     : Base URL of the search index service
    search_index        : Index receiving order documents
    state_machine_arn   : Orchestrator state machine (empty = local engine)
    notification_channel: "log" keeps messages in memory, "ses" sends email
    workflow_timeout_s  : Wall-clock ceiling of one workflow execution
    payment_*           : Backoff policy of the payment step
    tracking_id         : Recommendation event tracker (empty = disabled)
    delivery_stream     : Name of the buffered delivery stream
    bucket              : Object-store bucket of the batch sink
    buffer_*            : Buffering hints (interval / size threshold)
    flush_*             : Retry policy for buffer flushes
    dedupe_window       : Recently forwarded click records remembered for replays
    """

    model_config = SettingsConfigDict(
        env_prefix="ORDERSTREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    service_name: str = "orderstream"
    log_level: str = "INFO"

    # ── Cloud ────────────────────────────────────────────────────
    region: str = "us-east-1"
    endpoint_url: str | None = Field(
        default=None,
        description="Override endpoint for boto3 clients (LocalStack, MinIO)",
    )

    # ── Change feed ──────────────────────────────────────────────
    partition_key: str = "orderId"

    # ── Search index ─────────────────────────────────────────────
    search_endpoint: str = "http://localhost:9200"
    search_index: str = "orders"
    search_timeout_s: float = 30.0

    # ── Workflow ─────────────────────────────────────────────────
    state_machine_arn: str = ""
    workflow_timeout_s: float = 300.0
    payment_max_retries: int = 3
    payment_base_delay_s: float = 1.0
    payment_max_delay_s: float = 30.0
    workflow_workers: int = 4
    notification_channel: Literal["log", "ses"] = "log"
    notification_sender: str = "orders@example.com"

    # ── Clickstream ──────────────────────────────────────────────
    tracking_id: str = ""
    delivery_stream: str = "clickstream"
    bucket: str = "clickstream-bucket"
    buffer_interval_s: float = 60.0
    buffer_size_threshold_mb: float = 1.0
    flush_max_retries: int = 3
    flush_base_delay_s: float = 1.0
    dedupe_window: int = 10_000

    # ── Workers ──────────────────────────────────────────────────
    shard_workers: int = 8

    @field_validator("log_level")
    @classmethod
    def _valid_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value!r}")
        return level

    @field_validator(
        "workflow_timeout_s",
        "buffer_interval_s",
        "buffer_size_threshold_mb",
        "search_timeout_s",
    )
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("payment_max_retries", "flush_max_retries", "dedupe_window")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be non-negative")
        return value

    @property
    def buffer_size_threshold_bytes(self) -> int:
        """Size threshold of the batch sink in bytes (1 MB = 1024 * 1024)."""
        return int(self.buffer_size_threshold_mb * 1024 * 1024)


def get_settings() -> OrderStreamSettings:
    """Load settings from the environment."""
    return OrderStreamSettings()
