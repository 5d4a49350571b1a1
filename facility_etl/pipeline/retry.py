"""
Backoff policy applied by the run coordinator around every source request.

delay(attempt) = min(base_delay * factor ** (attempt - 1), max_delay) + U(0, jitter)
Only NetworkError is retried; ParseError and everything else propagate at once.
"""

import time
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from facility_etl.core.errors import NetworkError

T = TypeVar("T")

RetryCallback = Callable[[int, BaseException, float], None]


class BackoffPolicy:
    """
    Exponential backoff with jitter, built on tenacity.

    A call that always fails with NetworkError is attempted exactly
    max_retries + 1 times before the last error is re-raised.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 5.0,
        factor: float = 2.0,
        max_delay: float = 60.0,
        jitter: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Args:
            max_retries: Retries after the first attempt
            base_delay: Delay before the first retry, in seconds
            factor: Multiplier applied per retry
            max_delay: Cap on the exponential part of the delay
            jitter: Upper bound of the uniform random delay added to each wait
            sleep: Sleep function (injectable for tests)
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.factor = factor
        self.max_delay = max_delay
        self.jitter = jitter
        self.sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def _wait(self):
        wait = wait_exponential(multiplier=self.base_delay, exp_base=self.factor, max=self.max_delay)
        if self.jitter > 0:
            wait = wait + wait_random(0, self.jitter)
        return wait

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based), without jitter."""
        return min(self.base_delay * self.factor ** (attempt - 1), self.max_delay)

    def call(self, fn: Callable[[], T], on_retry: RetryCallback | None = None) -> T:
        """
        Run fn, retrying NetworkError with backoff.

        Args:
            fn: Zero-argument callable performing one request
            on_retry: Called as on_retry(attempt, error, delay) before each sleep

        Raises:
            NetworkError: The last error, once retries are exhausted
        """

        def before_sleep(state: RetryCallState) -> None:
            if on_retry is not None:
                delay = state.next_action.sleep if state.next_action else 0.0
                on_retry(state.attempt_number, state.outcome.exception(), delay)

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            retry=retry_if_exception_type(NetworkError),
            sleep=self.sleep,
            before_sleep=before_sleep,
            reraise=True,
        )
        return retrying(fn)
