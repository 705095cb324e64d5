#!/usr/bin/env python3
"""
Demo of splitting and merging partitions on an in-memory stream.

Doubles a stream from 2 to 4 partitions, then merges it back down to 1,
checking after every mutation that the open partitions tile the keyspace.
"""

from streamscale.control import InMemoryStreamControlClient, PartitionMutationCoordinator
from streamscale.core import SortOrder, keyspace_share
from streamscale.utils.config import get_config
from streamscale.utils.logging import configure_from_config

STREAM = "demo-stream"


def show(coordinator):
    for partition in coordinator.get_open_partitions(STREAM, SortOrder.ASCENDING).values():
        print(f"  {partition.partition_id}  {keyspace_share(partition):6.2f}%  parents={partition.parent_ids}")


def main():
    configure_from_config(get_config())

    print("=" * 60)
    print("streamscale - Split/Merge Demo")
    print("=" * 60)

    client = InMemoryStreamControlClient(updating_describes=1)
    client.create_stream(STREAM, partition_count=2)
    # no real waits against the in-memory stream
    coordinator = PartitionMutationCoordinator(client, sleep=lambda delay_ms: None)

    print("\n[1] Initial partitions")
    show(coordinator)

    print("\n[2] Splitting every partition in half")
    for partition_id in list(coordinator.get_open_partitions(STREAM)):
        state = coordinator.split_evenly(STREAM, partition_id, wait_for_stable=True)
        print(f"  split {partition_id}: {state.phase.value}")
        coordinator.registry.check_tiling(coordinator.get_open_partitions(STREAM))
    show(coordinator)
    print(f"  balanced: {coordinator.is_balanced(STREAM)}")

    print("\n[3] Merging back to a single partition")
    while coordinator.get_open_partition_count(STREAM) > 1:
        open_partitions = coordinator.get_open_partitions(STREAM)
        lower = next(iter(open_partitions))
        higher = coordinator.registry.find_adjacent(open_partitions, lower)
        state = coordinator.merge(STREAM, lower, higher.partition_id, wait_for_stable=True)
        print(f"  merge {lower} + {higher.partition_id}: {state.phase.value}")
        coordinator.registry.check_tiling(coordinator.get_open_partitions(STREAM))
    show(coordinator)

    print(f"\nHistory holds {len(client.history(STREAM))} partitions, 1 open")


if __name__ == "__main__":
    main()
