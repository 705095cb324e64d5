"""
Partition mutation coordinator.

Issues split and merge calls through the retrying executor and optionally
blocks until the stream is stable again. The open partition view is always
re-derived from a fresh listing; nothing is cached between calls.

Mutation phases:
    PENDING -> (busy | throttled)* -> ISSUED -> [STABILIZING -> STABLE]
    PENDING -> EXHAUSTED | FAILED | CANCELLED
"""

import threading
import time
from typing import Callable, Dict, List, Optional

from streamscale.control.client import STATUS_ACTIVE, StreamControlClient, StreamSummary
from streamscale.control.mutation import (
    MutationIntent,
    MutationKind,
    MutationPhase,
    MutationState,
)
from streamscale.control.retry import RetryingOperationExecutor, RetryPolicy, Sleeper
from streamscale.core.keyspace import even_split_point, shares_are_even
from streamscale.core.partition import Partition, SortOrder
from streamscale.core.registry import PartitionRegistry
from streamscale.errors import (
    CancellationError,
    InvalidMutationError,
    NotFoundError,
    OperationExhaustedError,
)
from streamscale.utils.logging import get_logger, stream_context

logger = get_logger(__name__)


class PartitionMutationCoordinator:
    """
    Splits and merges stream partitions.

    No local locking: the control plane enforces exclusivity and reports a
    partition that is mid-mutation as busy, which the executor retries.
    """

    def __init__(
        self,
        client: StreamControlClient,
        policy: Optional[RetryPolicy] = None,
        registry: Optional[PartitionRegistry] = None,
        sleep: Optional[Callable[[int], None]] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize coordinator.

        Args:
            client: Stream control plane client
            policy: Retry and polling policy
            registry: Partition registry
            sleep: Wait function taking milliseconds (default: a Sleeper
                observing ``cancel_event``)
            cancel_event: Event that aborts every wait when set
            clock: Monotonic clock used for the stabilization deadline
        """
        self.client = client
        self.policy = policy or RetryPolicy()
        self.registry = registry or PartitionRegistry()
        self._sleep = sleep or Sleeper(cancel_event)
        self._clock = clock

        self.executor = RetryingOperationExecutor(
            policy=self.policy,
            sleep=self._sleep,
            stabilizer=self.wait_for_active,
        )

    # Stream state

    def describe_stream(self, stream_name: str) -> StreamSummary:
        return self.executor.execute(
            lambda: self.client.describe_stream(stream_name),
            stream_name,
            max_attempts=self.policy.describe_retries,
            operation_name="describe stream",
        )

    def get_stream_status(self, stream_name: str) -> str:
        return self.describe_stream(stream_name).status

    def get_open_partition_count(self, stream_name: str) -> int:
        return self.describe_stream(stream_name).open_partition_count

    def wait_for_status(
        self,
        stream_name: str,
        target_status: str = STATUS_ACTIVE,
        initial_wait_ms: Optional[int] = None,
        subsequent_wait_ms: Optional[int] = None,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """
        Poll until the stream reports ``target_status``.

        There is no attempt cap. Without a timeout the poll only ends on a
        status match or on cancellation.

        Args:
            stream_name: Stream to poll
            target_status: Status to wait for
            initial_wait_ms: First wait (default: policy.initial_status_wait_ms)
            subsequent_wait_ms: Later waits (default: policy.status_poll_interval_ms)
            timeout_ms: Deadline (default: policy.stabilize_timeout_ms)

        Raises:
            CancellationError: If cancelled or the deadline passes
        """
        wait_ms = self.policy.initial_status_wait_ms if initial_wait_ms is None else initial_wait_ms
        next_wait_ms = (
            self.policy.status_poll_interval_ms if subsequent_wait_ms is None else subsequent_wait_ms
        )
        if timeout_ms is None:
            timeout_ms = self.policy.stabilize_timeout_ms
        deadline = None if timeout_ms is None else self._clock() + timeout_ms / 1000.0

        polls = 0
        while True:
            polls += 1
            status = self.get_stream_status(stream_name)
            if status == target_status:
                logger.debug(
                    "Stream reached status",
                    stream=stream_name,
                    status=status,
                    polls=polls,
                )
                return

            if deadline is None:
                self._sleep(wait_ms)
            else:
                remaining_ms = int((deadline - self._clock()) * 1000)
                if remaining_ms <= 0:
                    raise CancellationError(
                        f"Stream {stream_name} did not reach {target_status} "
                        f"within {timeout_ms}ms (last status {status})"
                    )
                # never wait past the deadline; the next poll raises if still unstable
                self._sleep(min(wait_ms, remaining_ms))
            # mutations take tens of seconds; poll faster once the first wait is over
            wait_ms = next_wait_ms

    def wait_for_active(self, stream_name: str) -> None:
        self.wait_for_status(stream_name, STATUS_ACTIVE)

    # Partition views

    def list_partitions(
        self,
        stream_name: str,
        start_after_id: Optional[str] = None,
    ) -> List[Partition]:
        """Full partition history of the stream, every page fetched."""
        logger.debug("Listing stream", stream=stream_name, start_after=start_after_id)
        return self.executor.execute(
            lambda: self.client.list_partitions(stream_name, start_after_id),
            stream_name,
            max_attempts=self.policy.describe_retries,
            operation_name="list partitions",
        )

    def get_open_partitions(
        self,
        stream_name: str,
        order: SortOrder = SortOrder.ASCENDING,
        start_after_id: Optional[str] = None,
    ) -> Dict[str, Partition]:
        """
        Open partitions of the stream, indexed by partition id.

        Args:
            stream_name: Stream name
            order: Presentation order by start hash key
            start_after_id: Only consider partitions listed after this id
        """
        return self.registry.derive_open_partitions(
            self.list_partitions(stream_name, start_after_id),
            order,
        )

    def get_open_partition(self, stream_name: str, partition_id: str) -> Partition:
        """
        Get a single open partition.

        Raises:
            NotFoundError: If the partition is absent or closed
        """
        logger.debug("Getting partition", stream=stream_name, partition=partition_id)
        try:
            return self.registry.get_single_partition(
                self.list_partitions(stream_name),
                partition_id,
            )
        except NotFoundError as e:
            raise NotFoundError(
                f"Partition {partition_id} not found in stream {stream_name}",
                partition_id=partition_id,
            ) from e

    def is_balanced(self, stream_name: str) -> bool:
        """True when every open partition owns an equal share of the keyspace."""
        return shares_are_even(
            self.get_open_partitions(stream_name, SortOrder.NONE).values(),
            scale=self.policy.comparison_scale,
        )

    # Mutations

    def split(
        self,
        stream_name: str,
        partition_id: str,
        target_hash_key: int,
        wait_for_stable: bool = False,
        verify: bool = False,
    ) -> MutationState:
        """
        Split a partition at a hash key.

        The partition closes and two children appear covering
        [start, target_hash_key) and [target_hash_key, end).

        Args:
            stream_name: Stream name
            partition_id: Partition to split
            target_hash_key: First hash key of the upper child
            wait_for_stable: Block until the stream is ACTIVE again
            verify: Check locally that the key lies strictly inside the partition

        Returns:
            Final mutation state

        Raises:
            InvalidMutationError: If the split is rejected
            OperationExhaustedError: If retries are used up
        """
        if isinstance(target_hash_key, bool) or not isinstance(target_hash_key, int):
            raise InvalidMutationError(f"Target hash key must be an int: {target_hash_key!r}")

        if verify:
            partition = self.get_open_partition(stream_name, partition_id)
            if not partition.start_hash_key < target_hash_key < partition.end_hash_key:
                raise InvalidMutationError(
                    f"Hash key {target_hash_key} is not strictly inside {partition}"
                )

        intent = MutationIntent.split(stream_name, partition_id, target_hash_key, wait_for_stable)
        return self._mutate(
            intent,
            lambda: self.client.split_partition(stream_name, partition_id, str(target_hash_key)),
        )

    def split_evenly(
        self,
        stream_name: str,
        partition_id: str,
        wait_for_stable: bool = False,
    ) -> MutationState:
        """Split a partition into two halves of equal width."""
        partition = self.get_open_partition(stream_name, partition_id)
        return self.split(
            stream_name,
            partition_id,
            even_split_point(partition),
            wait_for_stable=wait_for_stable,
        )

    def merge(
        self,
        stream_name: str,
        lower_id: str,
        higher_id: str,
        wait_for_stable: bool = False,
        verify: bool = False,
    ) -> MutationState:
        """
        Merge two hash-key-adjacent partitions.

        Both partitions close and one child covering their combined range appears.

        Args:
            stream_name: Stream name
            lower_id: Partition owning the lower hash keys
            higher_id: Partition starting where ``lower_id`` ends
            wait_for_stable: Block until the stream is ACTIVE again
            verify: Check adjacency locally before issuing the call

        Returns:
            Final mutation state
        """
        if verify:
            open_partitions = self.get_open_partitions(stream_name, SortOrder.NONE)
            for pid in (lower_id, higher_id):
                if pid not in open_partitions:
                    raise NotFoundError(
                        f"Partition {pid} not found in stream {stream_name}",
                        partition_id=pid,
                    )
            if not open_partitions[lower_id].is_adjacent_to(open_partitions[higher_id]):
                raise InvalidMutationError(
                    f"{open_partitions[lower_id]} and {open_partitions[higher_id]} are not adjacent"
                )

        intent = MutationIntent.merge(stream_name, lower_id, higher_id, wait_for_stable)
        return self._mutate(
            intent,
            lambda: self.client.merge_partitions(stream_name, lower_id, higher_id),
        )

    def apply(self, intent: MutationIntent) -> MutationState:
        """Carry out a split or merge request."""
        if intent.kind == MutationKind.SPLIT:
            return self.split(
                intent.stream_name,
                intent.partition_id,
                intent.target_hash_key,
                wait_for_stable=intent.wait_for_stable,
            )
        return self.merge(
            intent.stream_name,
            intent.partition_id,
            intent.adjacent_partition_id,
            wait_for_stable=intent.wait_for_stable,
        )

    def _mutate(self, intent: MutationIntent, call: Callable[[], None]) -> MutationState:
        state = MutationState(intent=intent)

        def operation() -> None:
            call()
            state.transition(MutationPhase.ISSUED)
            if intent.wait_for_stable:
                state.transition(MutationPhase.STABILIZING)

        with stream_context(intent.stream_name, mutation=intent.kind.value):
            logger.info(
                "Issuing mutation",
                partitions=list(intent.partition_ids),
                target_hash_key=(
                    str(intent.target_hash_key) if intent.target_hash_key is not None else None
                ),
                wait_for_stable=intent.wait_for_stable,
            )

            try:
                self.executor.execute(
                    operation,
                    intent.stream_name,
                    max_attempts=self.policy.modify_retries,
                    stabilize=intent.wait_for_stable,
                    operation_name=f"{intent.kind.value} partition",
                )
            except OperationExhaustedError as e:
                state.transition(MutationPhase.EXHAUSTED, str(e))
                raise
            except CancellationError as e:
                state.transition(MutationPhase.CANCELLED, str(e))
                raise
            except Exception as e:
                state.transition(MutationPhase.FAILED, str(e))
                logger.error("Mutation failed", error=str(e), phase=state.phase.value)
                raise

            if intent.wait_for_stable:
                state.transition(MutationPhase.STABLE)

            logger.info(
                "Mutation completed",
                phase=state.phase.value,
                duration_ms=state.duration_ms(),
            )

        return state
