"""
In-memory stream control plane.

Simulates a stream's partition history for tests and local runs:
- Split and merge append children that name their parents
- Listings page through the full history
- Status reports UPDATING for a configurable number of describes after a mutation
- Failures can be scripted per operation
"""

import threading
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional

from streamscale.control.client import STATUS_ACTIVE, STATUS_UPDATING, StreamSummary
from streamscale.core.keyspace import KEYSPACE_END, KEYSPACE_START
from streamscale.core.partition import Partition
from streamscale.core.registry import PartitionRegistry
from streamscale.errors import InvalidMutationError, NotFoundError
from streamscale.utils.logging import get_logger

logger = get_logger(__name__)

OPERATIONS = ("describe", "list", "split", "merge")


class _StreamState:
    def __init__(self, name: str):
        self.name = name
        self.history: List[Partition] = []
        self.next_id = 0
        self.updating_remaining = 0


class InMemoryStreamControlClient:
    """
    StreamControlClient kept entirely in process memory.

    Example:
        >>> client = InMemoryStreamControlClient()
        >>> client.create_stream("orders", partition_count=2)
        >>> client.split_partition("orders", "shardId-000000000000", "1000")
    """

    def __init__(
        self,
        page_size: int = 100,
        updating_describes: int = 0,
    ):
        """
        Initialize in-memory control plane.

        Args:
            page_size: Partitions per listing page
            updating_describes: Describe calls that report UPDATING after each mutation
        """
        if page_size < 1:
            raise ValueError(f"Invalid page_size: {page_size}")

        self.page_size = page_size
        self.updating_describes = updating_describes

        self._streams: Dict[str, _StreamState] = {}
        self._failures: Dict[str, Deque[Exception]] = defaultdict(deque)
        self._registry = PartitionRegistry()
        self._lock = threading.RLock()

        self.calls: Dict[str, int] = {op: 0 for op in OPERATIONS}
        self.pages_served = 0

    def create_stream(
        self,
        stream_name: str,
        partition_count: int = 1,
        start: int = KEYSPACE_START,
        end: int = KEYSPACE_END,
    ) -> None:
        """
        Create a stream with evenly divided partitions.

        The last partition absorbs any remainder of the division.
        """
        if partition_count < 1:
            raise ValueError(f"Invalid partition_count: {partition_count}")

        with self._lock:
            if stream_name in self._streams:
                raise InvalidMutationError(f"Stream {stream_name} already exists")

            state = _StreamState(stream_name)
            width = (end - start) // partition_count
            for i in range(partition_count):
                lower = start + i * width
                upper = end if i == partition_count - 1 else lower + width
                state.history.append(self._new_partition(state, lower, upper))

            self._streams[stream_name] = state

            logger.info(
                "Created stream",
                stream=stream_name,
                partition_count=partition_count,
            )

    def load_history(self, stream_name: str, partitions: List[Partition]) -> None:
        """
        Create a stream from an explicit partition history.

        New partition ids continue after the highest generated id already
        in the history.
        """
        with self._lock:
            if stream_name in self._streams:
                raise InvalidMutationError(f"Stream {stream_name} already exists")

            state = _StreamState(stream_name)
            state.history = list(partitions)

            next_id = len(partitions)
            for partition in partitions:
                prefix, _, suffix = partition.partition_id.rpartition("-")
                if prefix == "shardId" and suffix.isdigit():
                    next_id = max(next_id, int(suffix) + 1)
            state.next_id = next_id

            self._streams[stream_name] = state

    def fail_next(self, operation: str, *errors: Exception) -> None:
        """
        Script failures for the next calls of an operation.

        Args:
            operation: One of describe, list, split, merge
            errors: Exceptions raised by successive calls, in order
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        with self._lock:
            self._failures[operation].extend(errors)

    def history(self, stream_name: str) -> List[Partition]:
        """Full partition history of a stream, in creation order."""
        with self._lock:
            return list(self._get_stream(stream_name).history)

    # StreamControlClient

    def describe_stream(self, stream_name: str) -> StreamSummary:
        with self._lock:
            self._begin("describe")
            state = self._get_stream(stream_name)

            status = STATUS_ACTIVE
            if state.updating_remaining > 0:
                state.updating_remaining -= 1
                status = STATUS_UPDATING

            open_count = len(self._registry.derive_open_partitions(state.history))
            return StreamSummary(stream_name, status, open_count)

    def list_partitions(
        self,
        stream_name: str,
        start_after_id: Optional[str] = None,
    ) -> List[Partition]:
        with self._lock:
            self._begin("list")
            state = self._get_stream(stream_name)

            offset = 0
            if start_after_id is not None:
                ids = [p.partition_id for p in state.history]
                if start_after_id in ids:
                    offset = ids.index(start_after_id) + 1

            partitions: List[Partition] = []
            token: Optional[int] = offset
            while token is not None:
                page, token = self._page(state, token)
                partitions.extend(page)

            return partitions

    def split_partition(
        self,
        stream_name: str,
        partition_id: str,
        target_hash_key: str,
    ) -> None:
        with self._lock:
            self._begin("split")
            state = self._get_stream(stream_name)
            parent = self._get_open(state, partition_id)

            target = int(target_hash_key)
            if not parent.start_hash_key < target < parent.end_hash_key:
                raise InvalidMutationError(
                    f"Hash key {target} is not strictly inside {parent}"
                )

            state.history.append(
                self._new_partition(state, parent.start_hash_key, target, parent_id=partition_id)
            )
            state.history.append(
                self._new_partition(state, target, parent.end_hash_key, parent_id=partition_id)
            )
            state.updating_remaining = self.updating_describes

            logger.info(
                "Split partition",
                stream=stream_name,
                partition=partition_id,
                target_hash_key=target,
            )

    def merge_partitions(
        self,
        stream_name: str,
        lower_id: str,
        higher_id: str,
    ) -> None:
        with self._lock:
            self._begin("merge")
            state = self._get_stream(stream_name)
            lower = self._get_open(state, lower_id)
            higher = self._get_open(state, higher_id)

            if not lower.is_adjacent_to(higher):
                raise InvalidMutationError(f"{lower} and {higher} are not adjacent")

            state.history.append(
                self._new_partition(
                    state,
                    lower.start_hash_key,
                    higher.end_hash_key,
                    parent_id=lower_id,
                    adjacent_parent_id=higher_id,
                )
            )
            state.updating_remaining = self.updating_describes

            logger.info(
                "Merged partitions",
                stream=stream_name,
                lower=lower_id,
                higher=higher_id,
            )

    # Internals

    def _begin(self, operation: str) -> None:
        self.calls[operation] += 1
        failures = self._failures[operation]
        if failures:
            raise failures.popleft()

    def _get_stream(self, stream_name: str) -> _StreamState:
        state = self._streams.get(stream_name)
        if state is None:
            raise NotFoundError(f"Stream {stream_name} not found")
        return state

    def _get_open(self, state: _StreamState, partition_id: str) -> Partition:
        open_partitions = self._registry.derive_open_partitions(state.history)
        partition = open_partitions.get(partition_id)
        if partition is None:
            raise InvalidMutationError(
                f"Partition {partition_id} is not open in stream {state.name}"
            )
        return partition

    def _page(self, state: _StreamState, offset: int):
        self.pages_served += 1
        end = offset + self.page_size
        next_token = end if end < len(state.history) else None
        return state.history[offset:end], next_token

    def _new_partition(
        self,
        state: _StreamState,
        start: int,
        end: int,
        parent_id: Optional[str] = None,
        adjacent_parent_id: Optional[str] = None,
    ) -> Partition:
        partition = Partition(
            partition_id=f"shardId-{state.next_id:012d}",
            start_hash_key=start,
            end_hash_key=end,
            parent_id=parent_id,
            adjacent_parent_id=adjacent_parent_id,
        )
        state.next_id += 1
        return partition
