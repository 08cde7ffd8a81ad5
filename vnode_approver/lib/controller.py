"""Generic reconciliation controller driving a rate limited work queue."""

import copy
import logging
import threading
import time
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from .cache import DeletedFinalStateUnknown, Lister, deletion_handling_key_func
from .config import ControllerConfig
from .errors import handle_error, is_ignorable
from .rate_limiter import default_controller_rate_limiter
from .workqueue import RateLimitingQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[T], None]


def _never_terminal(obj: Any) -> bool:
    return False


class CertificateController(Generic[T]):
    """Reconciles objects by key, handing a private copy of each to ``handler``.

    The handler signals failure by raising. Every failure is retried through
    the rate limited queue; :class:`~vnode_approver.lib.errors.IgnorableError`
    failures are only logged, anything else goes to the error reporter.

    The queue never hands the same key to two workers at once, so a handler
    invocation never races another invocation for the same object.
    """

    def __init__(
        self,
        name: str,
        lister: Lister[T],
        has_synced: Callable[[], bool],
        handler: Handler[T],
        queue: RateLimitingQueue | None = None,
        is_terminal: Callable[[T], bool] = _never_terminal,
        copy_func: Callable[[T], T] = copy.deepcopy,
        key_func: Callable[[Any], str] = deletion_handling_key_func,
        config: ControllerConfig | None = None,
    ) -> None:
        self.name = name
        self.lister = lister
        self.has_synced = has_synced
        self.handler = handler
        self.config = config or ControllerConfig(name=name)
        if queue is None:
            queue = RateLimitingQueue(default_controller_rate_limiter(self.config), name="certificate")
        self.queue = queue
        self.is_terminal = is_terminal
        self.copy_func = copy_func
        self.key_func = key_func

    def on_add(self, obj: Any) -> None:
        logger.debug("Adding certificate request %s", getattr(obj, "name", obj))
        self._enqueue_object(obj)

    def on_update(self, old: Any, new: Any) -> None:
        logger.debug("Updating certificate request %s", getattr(old, "name", old))
        self._enqueue_object(new)

    def on_delete(self, obj: Any) -> None:
        if isinstance(obj, DeletedFinalStateUnknown):
            logger.debug("Deleting certificate request %s (final state unknown)", obj.key)
        else:
            logger.debug("Deleting certificate request %s", getattr(obj, "name", obj))
        self._enqueue_object(obj)

    def _enqueue_object(self, obj: Any) -> None:
        try:
            key = self.key_func(obj)
        except Exception as e:
            handle_error(e, f"Couldn't get key for object {obj!r}")
            return
        self.enqueue(key)

    def enqueue(self, key: str) -> None:
        """Queue ``key`` for reconciliation."""
        self.queue.add(key)

    def run(self, workers: int, stop_event: threading.Event) -> None:
        """Process the queue with ``workers`` threads until ``stop_event`` is set.

        Nothing is processed until the cache reports it has synced. Workers
        finish their current item before exiting; the queue is shut down only
        after every worker has returned.
        """
        logger.info("Starting certificate controller %r", self.name)
        try:
            if not self.wait_for_cache_sync(stop_event):
                logger.info("Unable to sync caches for certificate-%s", self.name)
                return

            threads = [
                threading.Thread(
                    target=self._worker,
                    args=(stop_event,),
                    name=f"{self.name}-worker-{i}",
                    daemon=True,
                )
                for i in range(workers)
            ]
            for thread in threads:
                thread.start()

            stop_event.wait()
            for thread in threads:
                thread.join()
        except Exception as e:
            handle_error(e, f"Certificate controller {self.name!r} crashed")
            raise
        finally:
            self.queue.shut_down()
            logger.info("Shutting down certificate controller %r", self.name)

    def wait_for_cache_sync(self, stop_event: threading.Event) -> bool:
        """Poll ``has_synced`` until it is true or ``stop_event`` is set."""
        logger.info("Waiting for caches to sync for certificate-%s", self.name)
        while not self.has_synced():
            if stop_event.wait(self.config.sync_poll_interval):
                return False
        logger.info("Caches are synced for certificate-%s", self.name)
        return True

    def _worker(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            if not self.process_next_work_item(timeout=self.config.worker_poll_interval):
                return

    def process_next_work_item(self, timeout: float | None = None) -> bool:
        """Handle one key off the queue. Returns False when it's time to quit."""
        key, shutdown = self.queue.get(timeout)
        if shutdown:
            return False
        if key is None:
            return True

        try:
            self.sync(key)
        except Exception as e:
            self.queue.add_rate_limited(key)
            if is_ignorable(e):
                logger.info("Sync %s failed with: %s", key, e)
            else:
                handle_error(e, f"Sync {key} failed")
        else:
            self.queue.forget(key)
        finally:
            self.queue.done(key)
        return True

    def sync(self, key: str) -> None:
        """Resolve ``key`` against the cache and run the handler on a copy."""
        start = time.monotonic()
        try:
            obj = self.lister.get(key)
            if obj is None:
                logger.debug("csr has been deleted: %s", key)
                return

            # the cached object is shared with other readers
            working = self.copy_func(obj)
            if self.is_terminal(working):
                return
            self.handler(working)
        finally:
            logger.debug(
                "Finished syncing certificate request %r (%.3fs)", key, time.monotonic() - start
            )
