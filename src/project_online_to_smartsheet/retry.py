"""Retry with exponential backoff for remote API calls.

Every remote call the migrator issues goes through RetryExecutor.execute().
Failures are classified before any retry decision:

- EVENTUAL_CONSISTENCY: a 404 on an operation that follows a successful
  create. Smartsheet may lag between a write and its visibility to reads, so
  the lookup is retried.
- RATE_OR_AVAILABILITY: 429, 5xx, timeouts and dropped connections.
- FATAL: everything else the remote side reports (400, 401, 403, a plain 404,
  validation and duplicate-name errors). Never retried.

Exceptions that are not remote errors at all (bugs, bad data) are not
classified and propagate untouched.

The schedule is jitter-free: initial_delay * multiplier ** (retry - 1),
capped at max_delay. With the defaults that is 1s, 2s, 4s, 8s between five
attempts.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

import requests
import urllib3

from .exceptions import OperationCancelledError, RemoteError, RetryExhaustedError

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    requests.Timeout,
    requests.ConnectionError,
    # Connection dropped while the body was read
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
    urllib3.exceptions.ProtocolError,
    ConnectionError,
    TimeoutError,
)


class ErrorClass(Enum):
    """Retry classification of a failed remote call."""

    EVENTUAL_CONSISTENCY = "eventual_consistency"
    RATE_OR_AVAILABILITY = "rate_or_availability"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        return self is not ErrorClass.FATAL


def classify_error(error: BaseException, *, follows_create: bool = False) -> ErrorClass | None:
    """Classify a failure of a remote call.

    Args:
        error: The exception raised by the call
        follows_create: Whether the call reads a resource this run just created

    Returns:
        The error class, or None if the exception is not a remote failure
    """
    if isinstance(error, RemoteError):
        status = error.status
        if status is None:
            return ErrorClass.RATE_OR_AVAILABILITY
        if status == 429 or status >= 500:
            return ErrorClass.RATE_OR_AVAILABILITY
        if status == 404 and follows_create:
            return ErrorClass.EVENTUAL_CONSISTENCY
        return ErrorClass.FATAL
    if isinstance(error, TRANSIENT_TRANSPORT_ERRORS):
        return ErrorClass.RATE_OR_AVAILABILITY
    return None


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry."""

    max_attempts: int = 5
    initial_delay: float = 1.0  # seconds
    multiplier: float = 2.0
    max_delay: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {self.max_attempts}"
            raise ValueError(msg)
        if self.initial_delay <= 0:
            msg = f"initial_delay must be greater than zero, got {self.initial_delay}"
            raise ValueError(msg)
        if self.multiplier < 1:
            msg = f"multiplier must be at least 1, got {self.multiplier}"
            raise ValueError(msg)
        if self.max_delay < self.initial_delay:
            msg = f"max_delay ({self.max_delay}) must not be below initial_delay ({self.initial_delay})"
            raise ValueError(msg)

    def delay_for(self, retry: int) -> float:
        """Delay in seconds before the given retry (1 = first retry)."""
        if retry < 1:
            msg = f"retry numbers start at 1, got {retry}"
            raise ValueError(msg)
        return min(self.initial_delay * self.multiplier ** (retry - 1), self.max_delay)

    def schedule(self) -> list[float]:
        """All delays this policy can sleep, in order."""
        return [self.delay_for(retry) for retry in range(1, self.max_attempts)]


class Cancellation:
    """Cancellation signal with an optional deadline, shared by one run.

    The deadline is measured on the clock passed in (monotonic by default).
    """

    def __init__(self, deadline: float | None = None, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._event: threading.Event = threading.Event()
        self._clock: Callable[[], float] = clock
        self.deadline: float | None = deadline

    @classmethod
    def after(cls, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> Cancellation:
        """Create a cancellation that fires once the given number of seconds elapsed."""
        return cls(clock() + seconds, clock=clock)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and self._clock() >= self.deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(self.deadline - self._clock(), 0.0)

    def raise_if_cancelled(self, context: str) -> None:
        if self.cancelled:
            msg = f"Cancelled before {context}"
            raise OperationCancelledError(msg)


@dataclass(frozen=True)
class RemoteOperation(Generic[T]):
    """One remote call: a name for logs plus the thunk that performs it."""

    name: str
    call: Callable[[], T]
    follows_create: bool = False


class RetryExecutor:
    """Runs remote operations under a retry policy."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        cancellation: Cancellation | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.policy: RetryPolicy = policy or RetryPolicy()
        self.cancellation: Cancellation | None = cancellation
        self._sleep: Callable[[float], None] = sleep
        # Total retries across all operations, for reporting
        self.retry_count: int = 0

    def execute(self, operation: RemoteOperation[T], policy: RetryPolicy | None = None) -> T:
        """Run the operation, retrying retryable failures.

        Args:
            operation: The remote operation to run
            policy: Overrides the executor's default policy for this call

        Returns:
            Whatever the operation returns

        Raises:
            RemoteError: Fatal failure, raised on first occurrence
            RetryExhaustedError: Retryable failures until no attempts remained
            OperationCancelledError: The run was cancelled or ran out of time
        """
        policy = policy or self.policy
        attempts = 0

        while True:
            self._check_cancelled(f"attempt {attempts + 1} of {operation.name}")
            attempts += 1
            try:
                return operation.call()
            except Exception as e:
                error_class = classify_error(e, follows_create=operation.follows_create)
                if error_class is None or not error_class.retryable:
                    raise
                if attempts >= policy.max_attempts:
                    raise RetryExhaustedError(operation.name, attempts, e) from e

                delay = policy.delay_for(attempts)
                logger.warning(
                    f"{operation.name} failed ({error_class.value}): {e}; "
                    f"retrying in {delay:g}s (attempt {attempts}/{policy.max_attempts})"
                )
                self._wait(delay, operation.name)
                self.retry_count += 1

    def _check_cancelled(self, context: str) -> None:
        if self.cancellation is not None:
            self.cancellation.raise_if_cancelled(context)

    def _wait(self, delay: float, operation_name: str) -> None:
        if self.cancellation is not None:
            self.cancellation.raise_if_cancelled(f"retrying {operation_name}")
            remaining = self.cancellation.remaining()
            if remaining is not None and remaining < delay:
                msg = f"Deadline would pass while waiting {delay:g}s to retry {operation_name}"
                raise OperationCancelledError(msg)
        self._sleep(delay)
