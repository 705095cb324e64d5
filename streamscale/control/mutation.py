"""
Split and merge requests and their progress.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class MutationKind(str, Enum):
    """Kinds of partition map mutation."""

    SPLIT = "split"
    MERGE = "merge"


class MutationPhase(str, Enum):
    """Phases of a single mutation call."""

    PENDING = "pending"            # Not yet accepted by the control plane
    ISSUED = "issued"              # Accepted by the control plane
    STABILIZING = "stabilizing"    # Waiting for the stream to become ACTIVE
    STABLE = "stable"              # Stream reported ACTIVE after the mutation
    EXHAUSTED = "exhausted"        # Retry attempts used up; remote outcome unknown
    FAILED = "failed"              # Non-transient error
    CANCELLED = "cancelled"        # A wait was cancelled


@dataclass(frozen=True)
class MutationIntent:
    """
    A request to split one partition or merge two adjacent partitions.

    Attributes:
        kind: Split or merge
        stream_name: Target stream
        partition_id: Partition to split, or lower partition of a merge
        adjacent_partition_id: Higher partition of a merge
        target_hash_key: First hash key of the upper split child
        wait_for_stable: Block until the stream is ACTIVE again
    """
    kind: MutationKind
    stream_name: str
    partition_id: str
    adjacent_partition_id: Optional[str] = None
    target_hash_key: Optional[int] = None
    wait_for_stable: bool = False

    def __post_init__(self):
        if self.kind == MutationKind.SPLIT and self.target_hash_key is None:
            raise ValueError("Split requires a target hash key")
        if self.kind == MutationKind.MERGE and self.adjacent_partition_id is None:
            raise ValueError("Merge requires an adjacent partition id")

    @staticmethod
    def split(
        stream_name: str,
        partition_id: str,
        target_hash_key: int,
        wait_for_stable: bool = False,
    ) -> "MutationIntent":
        return MutationIntent(
            kind=MutationKind.SPLIT,
            stream_name=stream_name,
            partition_id=partition_id,
            target_hash_key=target_hash_key,
            wait_for_stable=wait_for_stable,
        )

    @staticmethod
    def merge(
        stream_name: str,
        lower_id: str,
        higher_id: str,
        wait_for_stable: bool = False,
    ) -> "MutationIntent":
        return MutationIntent(
            kind=MutationKind.MERGE,
            stream_name=stream_name,
            partition_id=lower_id,
            adjacent_partition_id=higher_id,
            wait_for_stable=wait_for_stable,
        )

    @property
    def partition_ids(self) -> Tuple[str, ...]:
        if self.adjacent_partition_id is None:
            return (self.partition_id,)
        return (self.partition_id, self.adjacent_partition_id)


@dataclass
class MutationState:
    """
    Progress of one mutation.

    Attributes:
        intent: The request being carried out
        phase: Current phase
        start_time: Start timestamp (ms)
        end_time: End timestamp (ms), 0 while running
        error_message: Error message if the mutation did not succeed
    """
    intent: MutationIntent
    phase: MutationPhase = MutationPhase.PENDING
    start_time: int = 0
    end_time: int = 0
    error_message: str = ""

    def __post_init__(self):
        if self.start_time == 0:
            self.start_time = int(time.time() * 1000)

    def transition(self, phase: MutationPhase, error_message: str = "") -> None:
        self.phase = phase
        if error_message:
            self.error_message = error_message
        if self.is_complete():
            self.end_time = int(time.time() * 1000)

    def is_complete(self) -> bool:
        """
        Check if the mutation has finished.

        ISSUED is terminal when no stabilization wait was requested.
        """
        if self.phase == MutationPhase.ISSUED:
            return not self.intent.wait_for_stable
        return self.phase in (
            MutationPhase.STABLE,
            MutationPhase.EXHAUSTED,
            MutationPhase.FAILED,
            MutationPhase.CANCELLED,
        )

    @property
    def succeeded(self) -> bool:
        if self.intent.wait_for_stable:
            return self.phase == MutationPhase.STABLE
        return self.phase in (MutationPhase.ISSUED, MutationPhase.STABLE)

    def duration_ms(self) -> int:
        """Mutation duration in milliseconds."""
        if self.end_time > 0:
            return self.end_time - self.start_time
        return int(time.time() * 1000) - self.start_time
