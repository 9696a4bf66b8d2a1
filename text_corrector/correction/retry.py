from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from text_corrector.errors import RetryExhaustedError

T = TypeVar("T")

Scheduler = Callable[[float, Callable[[], None]], None]


class RetryClass(Enum):
    """How a failed provider call should be treated."""

    TIMEOUT = "timeout"
    CONNECTION_RESET = "connection_reset"
    GENERIC_IO = "generic_io"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        return self is not RetryClass.FATAL


def classify_failure(error: BaseException) -> RetryClass:
    """Map an error raised by a provider call to its RetryClass.

    Providers translate transport exceptions into TransientNetworkError, which
    carries its class. Everything else (parse, auth and backend errors, and any
    unexpected exception) is fatal.
    """
    retry_class = getattr(error, "retry_class", None)
    if isinstance(retry_class, RetryClass):
        return retry_class
    return RetryClass.FATAL


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and per-class linear backoff.

    max_retries counts additional attempts after the first failure, so the
    default of 3 allows 4 attempts in total.
    """

    max_retries: int = 3
    timeout_backoff_ms: int = 2000
    reset_backoff_ms: int = 3000
    io_backoff_ms: int = 2000

    def allows_retry(self, attempt: int) -> bool:
        """Whether another attempt may follow the given (1-based) failed attempt."""
        return attempt <= self.max_retries

    def delay_seconds(self, retry_class: RetryClass, attempt: int) -> float:
        base_ms = {
            RetryClass.TIMEOUT: self.timeout_backoff_ms,
            RetryClass.CONNECTION_RESET: self.reset_backoff_ms,
            RetryClass.GENERIC_IO: self.io_backoff_ms,
        }.get(retry_class)
        if base_ms is None:
            raise ValueError(f"{retry_class} is not retryable")
        return base_ms * attempt / 1000.0


@dataclass
class RetryState:
    """Bookkeeping for one logical call; discarded when the call resolves."""

    attempt: int = 0
    last_error: Optional[BaseException] = None
    last_class: Optional[RetryClass] = None

    def record_failure(self, error: BaseException) -> RetryClass:
        self.last_error = error
        self.last_class = classify_failure(error)
        return self.last_class


def timer_scheduler(delay: float, continuation: Callable[[], None]) -> None:
    """Run continuation on a fresh timer thread after delay seconds."""
    timer = threading.Timer(delay, continuation)
    timer.daemon = True
    timer.start()


class RetryOrchestrator:
    """Runs one provider operation with classified, bounded retries.

    Both entry points share RetryPolicy and RetryState, so the attempt
    counting and backoff math are identical. The blocking path sleeps between
    attempts; the non-blocking path hands the next attempt to a scheduler.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
        scheduler: Scheduler = timer_scheduler,
    ):
        self.policy = policy or RetryPolicy()
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._schedule = scheduler

    def call(self, operation: Callable[[], T], description: str = "provider call") -> T:
        """Run operation, blocking the caller through every retry delay."""
        state = RetryState()
        while True:
            state.attempt += 1
            try:
                return operation()
            except Exception as e:
                delay = self._next_delay(state, e, description)
                if delay is None:
                    if state.last_class is RetryClass.FATAL:
                        raise
                    raise RetryExhaustedError(state.attempt, e) from e
                self._sleep(delay)

    def call_async(
        self,
        operation: Callable[[], T],
        on_success: Callable[[T], None],
        on_failure: Callable[[BaseException], None],
        description: str = "provider call",
    ) -> None:
        """Run operation without blocking; retries are scheduled continuations."""
        _AsyncRetryCall(self, operation, on_success, on_failure, description).start()

    def _next_delay(self, state: RetryState, error: BaseException, description: str) -> Optional[float]:
        """Record a failure and return the delay before the next attempt, or None to stop."""
        retry_class = state.record_failure(error)
        if not retry_class.retryable:
            self.logger.error(f"{description} failed with non-retryable error: {error}")
            return None
        if not self.policy.allows_retry(state.attempt):
            self.logger.error(f"{description} failed {state.attempt} times, giving up: {error}")
            return None
        delay = self.policy.delay_seconds(retry_class, state.attempt)
        self.logger.warning(
            f"{description} attempt {state.attempt} failed ({retry_class.value}): {error}; " f"retrying in {delay:.1f}s"
        )
        return delay


class _AsyncRetryCall:
    """Attempt-counter state machine behind RetryOrchestrator.call_async.

    The next attempt is only scheduled after the previous one has returned,
    so at most one attempt is in flight.
    """

    def __init__(
        self,
        orchestrator: RetryOrchestrator,
        operation: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_failure: Callable[[BaseException], None],
        description: str,
    ):
        self._orchestrator = orchestrator
        self._operation = operation
        self._on_success = on_success
        self._on_failure = on_failure
        self._description = description
        self.state = RetryState()

    def start(self) -> None:
        self._attempt()

    def _attempt(self) -> None:
        self.state.attempt += 1
        try:
            result = self._operation()
        except Exception as e:
            delay = self._orchestrator._next_delay(self.state, e, self._description)
            if delay is None:
                if self.state.last_class is RetryClass.FATAL:
                    self._on_failure(e)
                else:
                    exhausted = RetryExhaustedError(self.state.attempt, e)
                    exhausted.__cause__ = e
                    self._on_failure(exhausted)
                return
            self._orchestrator._schedule(delay, self._attempt)
            return
        self._on_success(result)
