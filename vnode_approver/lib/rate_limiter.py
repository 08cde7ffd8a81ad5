"""Retry rate limiters for the reconciliation work queue."""

import threading
import time
from collections.abc import Callable, Hashable
from typing import Protocol

from .config import ControllerConfig


class RateLimiter(Protocol):
    """Decides how long a failed item waits before it is retried."""

    def when(self, item: Hashable) -> float:
        """Return the delay in seconds before ``item`` may be requeued."""
        ...

    def forget(self, item: Hashable) -> None:
        """Drop any failure history kept for ``item``."""
        ...

    def num_requeues(self, item: Hashable) -> int:
        """Return how many times ``item`` has been rate limited."""
        ...


class ItemExponentialFailureRateLimiter:
    """Per-item exponential backoff: ``base_delay * 2**failures``, capped."""

    def __init__(self, base_delay: float, max_delay: float) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            exp = self._failures.get(item, 0)
            self._failures[item] = exp + 1

        # 2**64 seconds is already well beyond any sane ceiling
        if exp >= 64:
            return self.max_delay
        return min(self.base_delay * (2**exp), self.max_delay)

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        with self._lock:
            return self._failures.get(item, 0)


class BucketRateLimiter:
    """Global token bucket that bounds overall retry throughput.

    Every call reserves one token. The returned delay is how long the caller
    must wait for that token to become available. State is shared across all
    items, so ``forget`` and ``num_requeues`` are no-ops.
    """

    def __init__(
        self,
        qps: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.qps = qps
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._last)
            self._last = now
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.qps)
            self._tokens -= 1.0
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.qps

    def forget(self, item: Hashable) -> None:
        pass

    def num_requeues(self, item: Hashable) -> int:
        return 0


class MaxOfRateLimiter:
    """Combines limiters by taking the longest delay any of them asks for."""

    def __init__(self, *limiters: RateLimiter) -> None:
        if not limiters:
            raise ValueError("at least one rate limiter is required")
        self.limiters = limiters

    def when(self, item: Hashable) -> float:
        # every limiter must see the failure, so no short-circuiting here
        return max([limiter.when(item) for limiter in self.limiters])

    def forget(self, item: Hashable) -> None:
        for limiter in self.limiters:
            limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return max(limiter.num_requeues(item) for limiter in self.limiters)


class FixedDelayRateLimiter:
    """Always returns the same delay. Counts requeues per item."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self._requeues: dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            self._requeues[item] = self._requeues.get(item, 0) + 1
        return self.delay

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._requeues.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        with self._lock:
            return self._requeues.get(item, 0)


def default_controller_rate_limiter(config: ControllerConfig | None = None) -> RateLimiter:
    """Build the controller's retry limiter from configuration.

    Per-key exponential backoff combined with a global token bucket. The bucket
    only bounds overall retry speed, it is not per item.
    """
    config = config or ControllerConfig()
    return MaxOfRateLimiter(
        ItemExponentialFailureRateLimiter(config.base_delay, config.max_delay),
        BucketRateLimiter(qps=config.qps, burst=config.burst),
    )
