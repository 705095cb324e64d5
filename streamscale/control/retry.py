"""
Retry logic for control plane operations.

Two transient failures are retried:
- Resource busy: the partition is mid-mutation; wait a fixed delay
- Throttled: the control plane is rate limiting; wait 2^attempt * base

Anything else propagates on the first occurrence. Backoff carries no jitter.
"""

import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, TypeVar

from streamscale.errors import (
    CancellationError,
    OperationExhaustedError,
    TransientBusyError,
    TransientThrottledError,
)
from streamscale.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry and polling configuration.

    Attributes:
        describe_retries: Maximum attempts for read-only calls
        modify_retries: Maximum attempts for split and merge
        backoff_base_ms: Base unit of the throttling backoff
        busy_wait_ms: Fixed wait after a resource-busy rejection
        comparison_scale: Rounding scale for keyspace share comparison
        initial_status_wait_ms: First wait while polling for a stream status
        status_poll_interval_ms: Subsequent waits while polling
        stabilize_timeout_ms: Deadline for stabilization polling (None = no deadline)
    """
    describe_retries: int = 10
    modify_retries: int = 10
    backoff_base_ms: int = 100
    busy_wait_ms: int = 1000
    comparison_scale: int = 10
    initial_status_wait_ms: int = 20000
    status_poll_interval_ms: int = 1000
    stabilize_timeout_ms: Optional[int] = None

    def __post_init__(self):
        if self.describe_retries < 1 or self.modify_retries < 1:
            raise ValueError("Retry counts must be at least 1")
        if self.backoff_base_ms < 0 or self.busy_wait_ms < 0:
            raise ValueError("Wait durations must not be negative")

    def with_overrides(self, **changes: Any) -> "RetryPolicy":
        """Copy of this policy with some fields replaced."""
        return replace(self, **changes)

    @staticmethod
    def from_config(config: Any) -> "RetryPolicy":
        """
        Build a policy from the ``scaling`` section of a Config.

        Args:
            config: streamscale Config instance
        """
        defaults = RetryPolicy()
        return RetryPolicy(
            describe_retries=config.get("scaling.describe_retries", defaults.describe_retries),
            modify_retries=config.get("scaling.modify_retries", defaults.modify_retries),
            backoff_base_ms=config.get("scaling.retry_backoff_ms", defaults.backoff_base_ms),
            busy_wait_ms=config.get("scaling.busy_wait_ms", defaults.busy_wait_ms),
            comparison_scale=config.get("scaling.pct_comparison_scale", defaults.comparison_scale),
            initial_status_wait_ms=config.get(
                "scaling.initial_status_wait_ms", defaults.initial_status_wait_ms
            ),
            status_poll_interval_ms=config.get(
                "scaling.status_poll_interval_ms", defaults.status_poll_interval_ms
            ),
            stabilize_timeout_ms=config.get(
                "scaling.stabilize_timeout_ms", defaults.stabilize_timeout_ms
            ),
        )


class Sleeper:
    """
    Blocking wait that observes a cancellation event.

    Every wait in the executor and coordinator goes through one of these, so
    setting the cancel event aborts backoff and status polling promptly.
    """

    def __init__(self, cancel_event: Optional[threading.Event] = None):
        """
        Initialize sleeper.

        Args:
            cancel_event: Event that cancels any wait when set
        """
        self.cancel_event = cancel_event or threading.Event()

    def __call__(self, delay_ms: int) -> None:
        """
        Wait for ``delay_ms`` milliseconds.

        Raises:
            CancellationError: If the cancel event is set before or during the wait
        """
        if self.cancel_event.is_set():
            raise CancellationError("Wait cancelled")

        if self.cancel_event.wait(delay_ms / 1000.0):
            raise CancellationError("Wait cancelled")

    def cancel(self) -> None:
        """Cancel current and future waits."""
        self.cancel_event.set()


class RetryingOperationExecutor:
    """
    Runs control plane operations with bounded retry.

    Operations are zero-argument callables, so any remote call (describe,
    list, split, merge) shares the same retry handling.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[int], None]] = None,
        stabilizer: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize executor.

        Args:
            policy: Retry policy
            sleep: Wait function taking milliseconds (default: a Sleeper)
            stabilizer: Called with the stream name after a successful
                operation when stabilization is requested
        """
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or Sleeper()
        self.stabilizer = stabilizer

    def execute(
        self,
        operation: Callable[[], T],
        stream_name: str,
        max_attempts: Optional[int] = None,
        stabilize: bool = False,
        operation_name: str = "operation",
    ) -> T:
        """
        Execute operation with retry logic.

        Args:
            operation: Callable to execute
            stream_name: Stream the operation targets
            max_attempts: Attempt limit (default: policy.modify_retries)
            stabilize: Block until the stream is stable after success
            operation_name: Name for logging

        Returns:
            Result from operation

        Raises:
            OperationExhaustedError: If every attempt hit a transient failure
            CancellationError: If a wait was cancelled
            ValueError: If max_attempts is below 1 or stabilize is set without a stabilizer
            Exception: Any non-transient failure from the operation, unchanged
        """
        limit = max_attempts if max_attempts is not None else self.policy.modify_retries
        if limit < 1:
            raise ValueError(f"Invalid max_attempts: {limit}")
        if stabilize and self.stabilizer is None:
            raise ValueError("stabilize requested but no stabilizer configured")

        attempts = 0
        while attempts < limit:
            attempts += 1
            try:
                result = operation()
            except TransientBusyError as e:
                logger.debug(
                    f"{operation_name} rejected, resource busy",
                    stream=stream_name,
                    attempt=attempts,
                    error=str(e),
                )
                # no wait once the last attempt has failed
                if attempts < limit:
                    self._sleep(self.policy.busy_wait_ms)
                continue
            except TransientThrottledError as e:
                backoff_ms = self.backoff_ms(attempts)
                logger.warning(
                    f"{operation_name} throttled",
                    stream=stream_name,
                    attempt=attempts,
                    backoff_ms=backoff_ms,
                    error=str(e),
                )
                if attempts < limit:
                    self._sleep(backoff_ms)
                continue

            if attempts > 1:
                logger.info(
                    f"{operation_name} succeeded after retry",
                    stream=stream_name,
                    attempts=attempts,
                )

            if stabilize:
                self.stabilizer(stream_name)

            return result

        logger.error(
            f"{operation_name} failed after all retries",
            stream=stream_name,
            attempts=attempts,
        )
        raise OperationExhaustedError(stream_name, attempts, operation_name)

    def backoff_ms(self, attempt: int) -> int:
        """
        Throttling backoff for an attempt.

        Formula: 2^attempt * base, attempt counted from 1

        Args:
            attempt: Attempt number that was throttled

        Returns:
            Backoff delay in milliseconds
        """
        return (2 ** attempt) * self.policy.backoff_base_ms
