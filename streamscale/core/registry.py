"""
Derivation of the open partition set from a raw partition listing.

The listing returned by the control plane is append-only history: it holds
every partition ever created for the stream. A partition is closed once any
other partition names it as a parent, and open otherwise. Open partitions
always tile the keyspace exactly.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from streamscale.core.keyspace import KEYSPACE_END, KEYSPACE_START
from streamscale.core.partition import Partition, SortOrder
from streamscale.errors import KeyspaceTilingError, NotFoundError
from streamscale.utils.logging import get_logger

logger = get_logger(__name__)


class PartitionRegistry:
    """
    Derives ordered views of open partitions.

    Stateless: every call works on the snapshot it is given, so concurrent
    callers never share a stale listing.
    """

    def derive_open_partitions(
        self,
        raw_partitions: Iterable[Partition],
        order: SortOrder = SortOrder.NONE,
    ) -> Dict[str, Partition]:
        """
        Build the map of open partitions.

        Args:
            raw_partitions: Fully materialized partition listing
            order: Presentation order by start hash key

        Returns:
            Ordered mapping of partition id to partition
        """
        # dict preserves insertion order, so it doubles as the ordered candidate set
        candidates: Dict[str, Partition] = {}
        closed = set()

        for partition in raw_partitions:
            if partition.partition_id not in closed:
                candidates[partition.partition_id] = partition

            # parents are closed even if they appear later in the listing
            for parent_id in partition.parent_ids:
                closed.add(parent_id)
                candidates.pop(parent_id, None)

        open_partitions: List[Partition] = list(candidates.values())

        if order == SortOrder.ASCENDING:
            open_partitions.sort(key=lambda p: p.start_hash_key)
        elif order == SortOrder.DESCENDING:
            open_partitions.sort(key=lambda p: p.start_hash_key, reverse=True)

        logger.debug(
            "Derived open partitions",
            open_count=len(open_partitions),
            closed_count=len(closed),
            order=order.value,
        )

        return {p.partition_id: p for p in open_partitions}

    def get_single_partition(
        self,
        raw_partitions: Iterable[Partition],
        partition_id: str,
    ) -> Partition:
        """
        Get one open partition by id.

        Args:
            raw_partitions: Fully materialized partition listing
            partition_id: Partition to find

        Returns:
            The open partition

        Raises:
            NotFoundError: If the partition is absent or closed
        """
        open_partitions = self.derive_open_partitions(raw_partitions)

        partition = open_partitions.get(partition_id)
        if partition is None:
            raise NotFoundError(
                f"Partition {partition_id} is not an open partition",
                partition_id=partition_id,
            )
        return partition

    def find_partition_for_key(
        self,
        open_partitions: Dict[str, Partition],
        hash_key: int,
    ) -> Partition:
        """
        Find the open partition owning a hash key.

        Raises:
            NotFoundError: If no open partition owns the key
        """
        for partition in open_partitions.values():
            if partition.contains(hash_key):
                return partition

        raise NotFoundError(f"No open partition owns hash key {hash_key}")

    def find_adjacent(
        self,
        open_partitions: Dict[str, Partition],
        partition_id: str,
    ) -> Optional[Partition]:
        """
        Find the open partition starting where the given one ends.

        Args:
            open_partitions: Derived open partition map
            partition_id: Lower partition of a prospective merge

        Returns:
            The higher neighbour, or None if the partition is last in the keyspace
        """
        lower = open_partitions.get(partition_id)
        if lower is None:
            raise NotFoundError(
                f"Partition {partition_id} is not an open partition",
                partition_id=partition_id,
            )

        for candidate in open_partitions.values():
            if lower.is_adjacent_to(candidate):
                return candidate
        return None

    def check_tiling(
        self,
        open_partitions: Dict[str, Partition],
        start: int = KEYSPACE_START,
        end: int = KEYSPACE_END,
    ) -> None:
        """
        Verify open partitions cover [start, end) without gaps or overlaps.

        Raises:
            KeyspaceTilingError: On the first gap or overlap found
        """
        ordered: Sequence[Partition] = sorted(
            open_partitions.values(), key=lambda p: p.start_hash_key
        )
        if not ordered:
            raise KeyspaceTilingError("No open partitions")

        expected = start
        for partition in ordered:
            if partition.start_hash_key > expected:
                raise KeyspaceTilingError(
                    f"Gap in keyspace at [{expected}, {partition.start_hash_key})"
                )
            if partition.start_hash_key < expected:
                raise KeyspaceTilingError(
                    f"Partition {partition.partition_id} overlaps keyspace below {expected}"
                )
            expected = partition.end_hash_key

        if expected != end:
            raise KeyspaceTilingError(
                f"Open partitions end at {expected}, keyspace ends at {end}"
            )
