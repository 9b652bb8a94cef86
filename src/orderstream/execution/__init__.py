"""
orderstream.execution - retry, deadlines and shard-parallel batch running.
"""

from orderstream.execution.retry import ExponentialBackoff, NoRetry, RetryContext, RetryStrategy
from orderstream.execution.timeout import Deadline
from orderstream.execution.workers import (
    BatchOutcome,
    Consumer,
    PoolResult,
    ShardBatch,
    ShardWorkerPool,
    group_by_shard,
)

__all__ = [
    "BatchOutcome",
    "Consumer",
    "Deadline",
    "ExponentialBackoff",
    "NoRetry",
    "PoolResult",
    "RetryContext",
    "RetryStrategy",
    "ShardBatch",
    "ShardWorkerPool",
    "group_by_shard",
]
