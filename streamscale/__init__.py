"""
streamscale - online split and merge of hash-keyed stream partitions.

This package keeps a stream's partition map consistent while capacity is
adjusted:
- Derives the open partition set from the append-only partition history
- Splits and merges partitions with bounded retry and exponential backoff
- Waits for the stream to stabilize after a mutation
- Compares keyspace shares with a rounding tolerance
"""

__version__ = "0.1.0"

from streamscale.control import (
    InMemoryStreamControlClient,
    KinesisControlClient,
    MutationIntent,
    PartitionMutationCoordinator,
    RetryingOperationExecutor,
    RetryPolicy,
)
from streamscale.core import Partition, PartitionRegistry, SortOrder, soft_compare

__all__ = [
    "InMemoryStreamControlClient",
    "KinesisControlClient",
    "MutationIntent",
    "Partition",
    "PartitionMutationCoordinator",
    "PartitionRegistry",
    "RetryingOperationExecutor",
    "RetryPolicy",
    "SortOrder",
    "soft_compare",
]
