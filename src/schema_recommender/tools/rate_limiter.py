"""Rate limiter - per-domain request pacing and backoff bookkeeping."""

import logging
import random
import threading
import time
from typing import Callable, Optional, Protocol
from urllib.parse import urlparse

import httpx

from ..models.rate_limit import RateLimitState

logger = logging.getLogger(__name__)


WINDOW_SECONDS = 60.0
BASE_BACKOFF_SECONDS = 30.0
MAX_BACKOFF_SECONDS = 300.0


class RateLimitStore(Protocol):
    """Storage for per-domain rate limit state."""

    def get(self, domain: str) -> Optional[RateLimitState]: ...

    def set(self, domain: str, state: RateLimitState) -> None: ...

    def evict(self, domain: str) -> None: ...


class InMemoryRateLimitStore:
    """Process-local store shared by every fetcher that holds it."""

    def __init__(self):
        self._states: dict[str, RateLimitState] = {}
        self._lock = threading.Lock()

    def get(self, domain: str) -> Optional[RateLimitState]:
        with self._lock:
            return self._states.get(domain)

    def set(self, domain: str, state: RateLimitState) -> None:
        with self._lock:
            self._states[domain] = state

    def evict(self, domain: str) -> None:
        with self._lock:
            self._states.pop(domain, None)


def _domain(url: str) -> Optional[str]:
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    return host or None


class RateLimiter:
    """
    Tracks request pacing per domain.
    All operations are best-effort: they never raise, and a URL without a
    usable host is treated as never limited.
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock
        self._rng = rng

    def _new_state(self, now: float) -> RateLimitState:
        return RateLimitState(window_start=now)

    def is_rate_limited(self, url: str) -> bool:
        """True while the domain's backoff window is in the future. Clears expired backoff."""
        domain = _domain(url)
        if domain is None:
            return False
        state = self.store.get(domain)
        if state is None:
            return False

        now = self._clock()
        if state.backoff_until is not None:
            if now < state.backoff_until:
                return True
            state = state.model_copy(update={"backoff_until": None, "is_rate_limited": False})
            self.store.set(domain, state)
        return state.is_rate_limited

    def record_success(self, url: str) -> None:
        domain = _domain(url)
        if domain is None:
            return
        now = self._clock()
        state = self.store.get(domain) or self._new_state(now)

        count = state.request_count + 1
        window_start = state.window_start
        if now - window_start > WINDOW_SECONDS:
            count = 1
            window_start = now

        self.store.set(
            domain,
            state.model_copy(
                update={
                    "last_request_time": now,
                    "request_count": count,
                    "window_start": window_start,
                }
            ),
        )

    def record_rate_limited(self, url: str, retry_after: Optional[float] = None) -> None:
        """
        Mark the domain as limited.
        Backoff is retry_after seconds when the origin supplied one, else
        min(30 * 2^request_count, 300) seconds.
        """
        domain = _domain(url)
        if domain is None:
            return
        now = self._clock()
        state = self.store.get(domain) or self._new_state(now)

        if retry_after:
            backoff = float(retry_after)
        else:
            backoff = min(BASE_BACKOFF_SECONDS * 2 ** state.request_count, MAX_BACKOFF_SECONDS)

        self.store.set(
            domain,
            state.model_copy(update={"is_rate_limited": True, "backoff_until": now + backoff}),
        )
        logger.warning("Rate limited for %s. Backing off %.0fs", domain, backoff)

    def get_delay(self, url: str) -> float:
        """Seconds to wait before the next request to the url's domain."""
        domain = _domain(url)
        if domain is None:
            return 1.0 + self._rng() * 2.0

        state = self.store.get(domain)
        if state is None:
            return 0.5 + self._rng()

        now = self._clock()
        if state.backoff_until is not None and now < state.backoff_until:
            return state.backoff_until - now

        elapsed_minutes = (now - state.window_start) / WINDOW_SECONDS
        if elapsed_minutes > 0:
            per_minute = state.request_count / elapsed_minutes
        else:
            per_minute = float("inf") if state.request_count else 0.0

        if per_minute > 10:
            return 2.0 + self._rng()
        if per_minute > 5:
            return 1.0 + self._rng()
        return 0.5 + self._rng()

    def clear(self, url: str) -> None:
        domain = _domain(url)
        if domain is not None:
            self.store.evict(domain)

    def status(self, url: str) -> Optional[RateLimitState]:
        domain = _domain(url)
        if domain is None:
            return None
        return self.store.get(domain)


def is_rate_limit_response(response: httpx.Response) -> bool:
    """429/503, a retry-after header, or an exhausted quota header."""
    return (
        response.status_code in (429, 503)
        or "retry-after" in response.headers
        or response.headers.get("x-ratelimit-remaining") == "0"
    )


def get_retry_after(response: httpx.Response) -> Optional[int]:
    """Retry-After in whole seconds, or None when absent or not an integer."""
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None
