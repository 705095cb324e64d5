"""
Control plane access: clients, retry handling and the mutation coordinator.
"""

from streamscale.control.client import StreamControlClient, StreamSummary
from streamscale.control.coordinator import PartitionMutationCoordinator
from streamscale.control.kinesis import KinesisConfig, KinesisControlClient
from streamscale.control.memory import InMemoryStreamControlClient
from streamscale.control.mutation import (
    MutationIntent,
    MutationKind,
    MutationPhase,
    MutationState,
)
from streamscale.control.retry import RetryingOperationExecutor, RetryPolicy, Sleeper

__all__ = [
    # Clients
    "StreamControlClient",
    "StreamSummary",
    "KinesisConfig",
    "KinesisControlClient",
    "InMemoryStreamControlClient",
    # Retry
    "RetryPolicy",
    "RetryingOperationExecutor",
    "Sleeper",
    # Mutations
    "PartitionMutationCoordinator",
    "MutationIntent",
    "MutationKind",
    "MutationPhase",
    "MutationState",
]
