"""
orderstream.clickstream - client interaction events.

Exports:
    ClickstreamProcessor, ClickstreamConsumer: Decode and fan out
    BufferedBatchSink, BufferingHints: Size/time-triggered archive writer
    PersonalizeEventsClient, NullRecommendationClient: Recommendation feeds
    S3ObjectStore, MemoryObjectStore: Archive destinations
"""

from orderstream.clickstream.batch_sink import BufferedBatchSink, BufferingHints, FlushReport
from orderstream.clickstream.models import (
    ClickEvent,
    decode_payload,
    decode_record,
    encode_record,
    record_key,
)
from orderstream.clickstream.processor import (
    ClickstreamConsumer,
    ClickstreamProcessor,
    ProcessResult,
)
from orderstream.clickstream.recommendations import (
    NullRecommendationClient,
    PersonalizeEventsClient,
    RecommendationClient,
)
from orderstream.clickstream.storage import (
    MemoryObjectStore,
    ObjectInfo,
    ObjectStore,
    S3ObjectStore,
)

__all__ = [
    "BufferedBatchSink",
    "BufferingHints",
    "ClickEvent",
    "ClickstreamConsumer",
    "ClickstreamProcessor",
    "FlushReport",
    "MemoryObjectStore",
    "NullRecommendationClient",
    "ObjectInfo",
    "ObjectStore",
    "PersonalizeEventsClient",
    "ProcessResult",
    "RecommendationClient",
    "S3ObjectStore",
    "decode_payload",
    "decode_record",
    "encode_record",
    "record_key",
]
