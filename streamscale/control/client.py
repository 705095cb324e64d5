"""
Stream control plane client protocol.

Defines the only boundary the coordinator touches. Implementations signal a
partition that is mid-mutation with TransientBusyError and rate limiting with
TransientThrottledError.
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol, runtime_checkable

from streamscale.core.partition import Partition

STATUS_ACTIVE = "ACTIVE"
STATUS_UPDATING = "UPDATING"


@dataclass(frozen=True)
class StreamSummary:
    """
    Summary of a stream's state.

    Attributes:
        stream_name: Stream name
        status: Control plane status (ACTIVE, UPDATING, ...)
        open_partition_count: Number of open partitions
    """
    stream_name: str
    status: str
    open_partition_count: int

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE


@runtime_checkable
class StreamControlClient(Protocol):
    """Protocol for stream control plane backends."""

    def describe_stream(self, stream_name: str) -> StreamSummary:
        """Get the stream's status and open partition count."""
        ...

    def list_partitions(
        self,
        stream_name: str,
        start_after_id: Optional[str] = None,
    ) -> List[Partition]:
        """
        List every partition of the stream, open and closed.

        All pages are fetched before returning.

        Args:
            stream_name: Stream name
            start_after_id: Only list partitions after this id
        """
        ...

    def split_partition(
        self,
        stream_name: str,
        partition_id: str,
        target_hash_key: str,
    ) -> None:
        """
        Split a partition at a hash key.

        Args:
            stream_name: Stream name
            partition_id: Partition to split
            target_hash_key: Decimal string of the first key of the upper child
        """
        ...

    def merge_partitions(
        self,
        stream_name: str,
        lower_id: str,
        higher_id: str,
    ) -> None:
        """Merge two hash-key-adjacent partitions."""
        ...
