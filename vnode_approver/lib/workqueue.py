"""Deduplicating, delaying and rate limited work queues.

Guarantees provided to callers:

* an item is queued at most once no matter how many times it is added
  before a worker picks it up;
* an item is never handed to two workers at the same time. Adding an item
  that is currently being processed marks it dirty, and it is requeued when
  the worker calls ``done``.
"""

import heapq
import itertools
import threading
import time
from collections import deque
from collections.abc import Hashable

from .rate_limiter import RateLimiter


class WorkQueue:
    """Set-backed FIFO queue with per-item in-flight tracking."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._queue: deque[Hashable] = deque()
        # items that need processing
        self._dirty: set[Hashable] = set()
        # items currently handed out to a worker
        self._processing: set[Hashable] = set()
        self._cond = threading.Condition()
        self._shutting_down = False

    def add(self, item: Hashable) -> None:
        """Mark ``item`` as needing processing."""
        with self._cond:
            if self._shutting_down:
                return
            if item in self._dirty:
                return
            self._dirty.add(item)
            if item in self._processing:
                return
            self._queue.append(item)
            self._cond.notify()

    def get(self, timeout: float | None = None) -> tuple[Hashable | None, bool]:
        """Block until an item is available.

        Returns:
            ``(item, False)`` for a new item, ``(None, True)`` once the queue is
            shut down and drained, or ``(None, False)`` if ``timeout`` elapsed.
        """
        with self._cond:
            available = self._cond.wait_for(
                lambda: bool(self._queue) or self._shutting_down, timeout
            )
            if not available:
                return None, False
            if not self._queue:
                return None, True

            item = self._queue.popleft()
            self._processing.add(item)
            self._dirty.discard(item)
            return item, False

    def done(self, item: Hashable) -> None:
        """Mark ``item`` as finished; requeue it if it was added meanwhile."""
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    def len(self) -> int:
        with self._cond:
            return len(self._queue)

    def __len__(self) -> int:
        return self.len()

    def shut_down(self) -> None:
        """Stop accepting items and wake every blocked ``get``."""
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down


class DelayingQueue(WorkQueue):
    """Work queue that can add items after a delay.

    A daemon thread moves items into the queue once their ready time passes.
    If an item is already waiting, a new ``add_after`` only takes effect when
    it would make the item ready sooner.
    """

    def __init__(self, name: str = "") -> None:
        super().__init__(name)
        self._waiting: list[tuple[float, int, Hashable]] = []
        self._ready_at: dict[Hashable, float] = {}
        self._sequence = itertools.count()
        self._delay_cond = threading.Condition()
        self._delay_thread = threading.Thread(
            target=self._waiting_loop,
            name=f"{name or 'workqueue'}-delay",
            daemon=True,
        )
        self._delay_thread.start()

    def add_after(self, item: Hashable, delay: float) -> None:
        """Add ``item`` once ``delay`` seconds have passed."""
        if self.shutting_down():
            return
        if delay <= 0:
            self.add(item)
            return

        ready = time.monotonic() + delay
        with self._delay_cond:
            existing = self._ready_at.get(item)
            if existing is not None and existing <= ready:
                return
            self._ready_at[item] = ready
            heapq.heappush(self._waiting, (ready, next(self._sequence), item))
            self._delay_cond.notify()

    def waiting_len(self) -> int:
        """Number of items waiting for their delay to expire."""
        with self._delay_cond:
            return len(self._ready_at)

    def shut_down(self) -> None:
        super().shut_down()
        with self._delay_cond:
            self._delay_cond.notify_all()

    def _waiting_loop(self) -> None:
        while True:
            ready_items: list[Hashable] = []
            with self._delay_cond:
                if self.shutting_down():
                    return
                now = time.monotonic()
                while self._waiting and self._waiting[0][0] <= now:
                    ready, _, item = heapq.heappop(self._waiting)
                    # superseded by an earlier add_after
                    if self._ready_at.get(item) != ready:
                        continue
                    del self._ready_at[item]
                    ready_items.append(item)

                if not ready_items:
                    timeout = self._waiting[0][0] - now if self._waiting else None
                    self._delay_cond.wait(timeout)
                    continue

            for item in ready_items:
                self.add(item)


class RateLimitingQueue(DelayingQueue):
    """Delaying queue whose retry delays come from a :class:`RateLimiter`."""

    def __init__(self, rate_limiter: RateLimiter, name: str = "") -> None:
        super().__init__(name)
        self.rate_limiter = rate_limiter

    def add_rate_limited(self, item: Hashable) -> None:
        """Requeue ``item`` after the delay the rate limiter asks for."""
        self.add_after(item, self.rate_limiter.when(item))

    def forget(self, item: Hashable) -> None:
        """Clear the rate limiter's failure history for ``item``."""
        self.rate_limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return self.rate_limiter.num_requeues(item)
