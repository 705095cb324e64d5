"""
Error taxonomy for partition scaling.

Only the transient kinds are handled locally (by the retrying executor).
Everything else propagates unchanged to the caller.
"""

from typing import Optional


class StreamScaleError(Exception):
    """Base exception for streamscale operations."""
    pass


class TransientError(StreamScaleError):
    """Control plane rejected a call for a reason that clears on its own."""
    pass


class TransientBusyError(TransientError):
    """Target partition or stream is mid-mutation."""
    pass


class TransientThrottledError(TransientError):
    """Control plane call was rate limited."""
    pass


class OperationExhaustedError(StreamScaleError):
    """
    Retry attempts were used up without success.

    The remote mutation may or may not have been applied; re-derive the
    current partition state before issuing anything else.
    """

    def __init__(self, stream_name: str, attempts: int, operation_name: str = "operation"):
        self.stream_name = stream_name
        self.attempts = attempts
        self.operation_name = operation_name
        super().__init__(
            f"Unable to complete {operation_name} on stream {stream_name} "
            f"after {attempts} attempts"
        )


class NotFoundError(StreamScaleError):
    """Requested partition (or stream) does not exist in the open set."""

    def __init__(self, message: str, partition_id: Optional[str] = None):
        self.partition_id = partition_id
        super().__init__(message)


class InvalidMutationError(StreamScaleError):
    """Split or merge request is invalid for the current partition map."""
    pass


class CancellationError(StreamScaleError):
    """A blocking wait was cancelled or ran past its deadline."""
    pass


class KeyspaceTilingError(StreamScaleError):
    """Open partitions do not cover the keyspace exactly once."""
    pass
