"""List/watch informer keeping a :class:`Store` in sync with the API server."""

import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any, Generic, Protocol, TypeVar

from kubernetes.client.exceptions import ApiException

from .cache import DeletedFinalStateUnknown, Store, object_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

ListFunc = Callable[[], tuple[list[T], str]]
WatchFunc = Callable[[str], Iterator[tuple[str, T]]]


class ResourceEventHandler(Protocol):
    """Receives add/update/delete notifications from an informer."""

    def on_add(self, obj: Any) -> None: ...

    def on_update(self, old: Any, new: Any) -> None: ...

    def on_delete(self, obj: Any) -> None: ...


class SharedInformer(Generic[T]):
    """Lists then watches a resource, mirroring it into a store.

    Handlers are notified after the store has been updated, so a lookup made
    in response to a notification sees that change or a newer one. Objects
    missing from a relist are delivered to ``on_delete`` wrapped in
    :class:`DeletedFinalStateUnknown`.
    """

    def __init__(
        self,
        list_func: ListFunc[T],
        watch_func: WatchFunc[T],
        key_func: Callable[[T], str] = object_key,
        relist_backoff: float = 1.0,
    ) -> None:
        self.list_func = list_func
        self.watch_func = watch_func
        self.store: Store[T] = Store(key_func)
        self.relist_backoff = relist_backoff
        self._handlers: list[ResourceEventHandler] = []
        self._synced = threading.Event()

    @property
    def lister(self) -> Store[T]:
        return self.store

    def add_event_handler(self, handler: ResourceEventHandler) -> None:
        self._handlers.append(handler)

    def has_synced(self) -> bool:
        """True once the initial list has been loaded into the store."""
        return self._synced.is_set()

    def run(self, stop_event: threading.Event) -> None:
        """List and watch until ``stop_event`` is set, relisting after failures."""
        while not stop_event.is_set():
            try:
                resource_version = self.relist()
                self.watch(resource_version, stop_event)
            except ApiException as e:
                if e.status == 410:
                    logger.info("Watch resource version expired, relisting")
                else:
                    logger.warning("List/watch failed: %s", e)
                stop_event.wait(self.relist_backoff)
            except Exception as e:
                logger.warning("List/watch failed: %s", e, exc_info=e)
                stop_event.wait(self.relist_backoff)

    def relist(self) -> str:
        """Replace the store contents with a fresh list and notify handlers.

        Returns:
            The resource version to start watching from
        """
        objs, resource_version = self.list_func()
        keyed = [(self.store.key_func(obj), obj) for obj in objs]
        previous = {key: self.store.get(key) for key, _ in keyed}
        removed = self.store.replace(objs)

        for key, obj in keyed:
            old = previous[key]
            if old is None:
                self._notify("on_add", obj)
            else:
                self._notify("on_update", old, obj)
        for key, obj in removed.items():
            self._notify("on_delete", DeletedFinalStateUnknown(key=key, obj=obj))

        if not self._synced.is_set():
            logger.info("Initial list complete with %d objects", len(objs))
            self._synced.set()
        return resource_version

    def watch(self, resource_version: str, stop_event: threading.Event) -> None:
        """Apply watch events until the stream ends or ``stop_event`` is set."""
        for event_type, obj in self.watch_func(resource_version):
            key = self.store.key_func(obj)
            if event_type == "ADDED":
                self.store.add(obj)
                self._notify("on_add", obj)
            elif event_type == "MODIFIED":
                old = self.store.get(key)
                self.store.update(obj)
                if old is None:
                    self._notify("on_add", obj)
                else:
                    self._notify("on_update", old, obj)
            elif event_type == "DELETED":
                self.store.delete(obj)
                self._notify("on_delete", obj)
            if stop_event.is_set():
                return

    def _notify(self, method: str, *args: Any) -> None:
        for handler in self._handlers:
            getattr(handler, method)(*args)
