"""Partition model, keyspace arithmetic and open partition derivation."""

from streamscale.core.keyspace import (
    KEYSPACE_END,
    KEYSPACE_START,
    KEYSPACE_WIDTH,
    even_split_point,
    keyspace_share,
    shares_are_even,
    soft_compare,
)
from streamscale.core.partition import Partition, SortOrder
from streamscale.core.registry import PartitionRegistry

__all__ = [
    "KEYSPACE_END",
    "KEYSPACE_START",
    "KEYSPACE_WIDTH",
    "Partition",
    "PartitionRegistry",
    "SortOrder",
    "even_split_point",
    "keyspace_share",
    "shares_are_even",
    "soft_compare",
]
