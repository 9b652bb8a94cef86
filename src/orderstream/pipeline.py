"""
Pipeline wiring - builds the runtime components from settings.

Everything here is composition only: each builder takes settings plus the
process-wide ``ClientRegistry`` and returns a ready component. Entry points
(the CLI, a Lambda-style handler) call these once at startup.

Example::

    settings = get_settings()
    with ClientRegistry(settings) as registry:
        orchestrator = build_orchestrator(settings, registry)
        consumer = build_change_consumer(settings, registry, orchestrator)
        consumer.handle_batch(records)
"""

from __future__ import annotations

from collections.abc import Sequence

from orderstream.changefeed.consumer import ChangeFeedConsumer
from orderstream.changefeed.dispatcher import ChangeDispatcher, Sink
from orderstream.clickstream.batch_sink import BufferedBatchSink
from orderstream.clickstream.processor import ClickstreamConsumer, ClickstreamProcessor
from orderstream.clickstream.recommendations import (
    NullRecommendationClient,
    PersonalizeEventsClient,
    RecommendationClient,
)
from orderstream.clickstream.storage import ObjectStore, S3ObjectStore
from orderstream.core.clients import ClientRegistry
from orderstream.core.errors import ConfigError
from orderstream.core.idempotency import RecentKeys
from orderstream.core.logging import get_logger
from orderstream.core.settings import OrderStreamSettings
from orderstream.execution.retry import ExponentialBackoff
from orderstream.execution.workers import Consumer, ShardWorkerPool
from orderstream.notifications.channels import (
    LoggingNotificationChannel,
    NotificationChannel,
    SesNotificationChannel,
)
from orderstream.orchestration.engine import OrderWorkflowEngine
from orderstream.orchestration.orchestrator import (
    LocalOrchestrator,
    Orchestrator,
    StepFunctionsOrchestrator,
)
from orderstream.orchestration.starter import WorkflowStarter
from orderstream.orchestration.steps import OrderStepCapabilities
from orderstream.search.bridge import SearchIndexBridge

logger = get_logger(__name__)

SINK_NAMES = ("search", "workflow")


def build_notifier(
    settings: OrderStreamSettings, registry: ClientRegistry | None = None
) -> NotificationChannel:
    """SES when configured and a registry is at hand, in-memory otherwise."""
    if registry is None or settings.notification_channel == "log":
        return LoggingNotificationChannel()
    return SesNotificationChannel(registry.boto("ses"), settings.notification_sender)


def build_engine(
    settings: OrderStreamSettings, notifier: NotificationChannel
) -> OrderWorkflowEngine:
    return OrderWorkflowEngine(
        OrderStepCapabilities(notifier),
        timeout_seconds=settings.workflow_timeout_s,
        payment_retry=ExponentialBackoff(
            max_retries=settings.payment_max_retries,
            base_delay=settings.payment_base_delay_s,
            max_delay=settings.payment_max_delay_s,
        ),
    )


def build_orchestrator(
    settings: OrderStreamSettings,
    registry: ClientRegistry,
    *,
    remote: bool | None = None,
    notifier: NotificationChannel | None = None,
) -> Orchestrator:
    """Remote when a state machine ARN is configured, local otherwise."""
    if remote is None:
        remote = bool(settings.state_machine_arn)
    if remote:
        if not settings.state_machine_arn:
            raise ConfigError("ORDERSTREAM_STATE_MACHINE_ARN is required for the remote orchestrator")
        return StepFunctionsOrchestrator(registry.boto("stepfunctions"), settings.state_machine_arn)

    engine = build_engine(settings, notifier or build_notifier(settings, registry))
    return LocalOrchestrator(engine, max_workers=settings.workflow_workers)


def build_change_consumer(
    settings: OrderStreamSettings,
    registry: ClientRegistry,
    orchestrator: Orchestrator,
    sinks: Sequence[str] = SINK_NAMES,
) -> ChangeFeedConsumer:
    unknown = set(sinks) - set(SINK_NAMES)
    if unknown:
        raise ConfigError(f"Unknown sink(s): {sorted(unknown)}")

    built: list[Sink] = []
    if "search" in sinks:
        built.append(SearchIndexBridge(registry.http(), index=settings.search_index))
    if "workflow" in sinks:
        built.append(WorkflowStarter(orchestrator))

    logger.info("pipeline.change_consumer", sinks=[s.name for s in built])
    return ChangeFeedConsumer(ChangeDispatcher(built), partition_key=settings.partition_key)


def build_recommendations(
    settings: OrderStreamSettings, registry: ClientRegistry
) -> RecommendationClient:
    if not settings.tracking_id:
        return NullRecommendationClient()
    return PersonalizeEventsClient(registry.boto("personalize-events"), settings.tracking_id)


def build_batch_sink(
    settings: OrderStreamSettings,
    registry: ClientRegistry,
    store: ObjectStore | None = None,
) -> BufferedBatchSink:
    if store is None:
        store = S3ObjectStore(registry.boto("s3"), settings.bucket)
    return BufferedBatchSink.from_settings(settings, store)


def build_clickstream_consumer(
    settings: OrderStreamSettings,
    registry: ClientRegistry,
    sink: BufferedBatchSink,
) -> ClickstreamConsumer:
    processor = ClickstreamProcessor(
        build_recommendations(settings, registry),
        sink,
        forwarded=RecentKeys(settings.dedupe_window),
    )
    return ClickstreamConsumer(processor)


def build_shard_pool(settings: OrderStreamSettings, consumer: Consumer) -> ShardWorkerPool:
    return ShardWorkerPool(consumer, max_workers=settings.shard_workers)


__all__ = [
    "SINK_NAMES",
    "build_batch_sink",
    "build_change_consumer",
    "build_clickstream_consumer",
    "build_engine",
    "build_notifier",
    "build_orchestrator",
    "build_recommendations",
    "build_shard_pool",
]
