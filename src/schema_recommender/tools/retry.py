"""Retry combinator and overall deadline shared by fetcher and providers."""

import logging
import time
from typing import Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_any,
)

from ..config.loader import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Deadline:
    """Absolute point in time after which pending work should be abandoned."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> float:
        if self._expires_at is None:
            return float("inf")
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0

    def bound(self, seconds: float) -> float:
        """Clamp a timeout or sleep to what is left."""
        return min(seconds, self.remaining())


def with_retry(
    policy: RetryPolicy,
    operation: Callable[[], T],
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    deadline: Optional[Deadline] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run operation under policy.
    Only exceptions in retry_on are retried; the last one is re-raised.
    With a deadline, no new attempt starts after expiry and backoff sleeps
    are clamped to the remaining time.
    """
    deadline = deadline or Deadline.never()
    backoff = policy.backoff()

    def _wait(retry_state: RetryCallState) -> float:
        return deadline.bound(backoff(retry_state))

    def _deadline_passed(retry_state: RetryCallState) -> bool:
        return deadline.expired()

    retrying = Retrying(
        stop=stop_any(stop_after_attempt(policy.max_attempts), _deadline_passed),
        wait=_wait,
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        sleep=sleep,
        reraise=True,
    )
    return retrying(operation)
