"""Thread-safe object store backing the controller's reads."""

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


@dataclass(frozen=True)
class DeletedFinalStateUnknown:
    """Tombstone for an object that vanished while the watch was disconnected.

    The stored ``obj`` is the last state seen and may be stale.
    """

    key: str
    obj: Any


def object_key(obj: Any) -> str:
    """Key for a cluster-scoped object: its name."""
    name = getattr(obj, "name", None)
    if not name:
        raise ValueError(f"object has no name: {obj!r}")
    return name


def deletion_handling_key_func(obj: Any) -> str:
    """Like :func:`object_key` but also accepts deletion tombstones."""
    if isinstance(obj, DeletedFinalStateUnknown):
        return obj.key
    return object_key(obj)


class Lister(Protocol[T_co]):
    """Read-only lookup of the current object for a key."""

    def get(self, key: str) -> T_co | None:
        """Return the cached object, or None if it has been deleted."""
        ...


class Store(Generic[T]):
    """Key to object map shared between the informer and controller workers.

    Objects returned by :meth:`get` are shared with every other reader and
    must not be mutated.
    """

    def __init__(self, key_func: Callable[[T], str] = object_key) -> None:
        self.key_func = key_func
        self._items: dict[str, T] = {}
        self._lock = threading.RLock()

    def add(self, obj: T) -> None:
        with self._lock:
            self._items[self.key_func(obj)] = obj

    update = add

    def delete(self, obj: T) -> None:
        with self._lock:
            self._items.pop(self.key_func(obj), None)

    def get(self, key: str) -> T | None:
        with self._lock:
            return self._items.get(key)

    def list_objects(self) -> list[T]:
        with self._lock:
            return list(self._items.values())

    def list_keys(self) -> list[str]:
        with self._lock:
            return list(self._items)

    def replace(self, objs: Iterable[T]) -> dict[str, T]:
        """Swap the whole contents for ``objs``.

        Returns:
            The objects whose keys are no longer present, keyed by key.
        """
        fresh = {self.key_func(obj): obj for obj in objs}
        with self._lock:
            removed = {k: v for k, v in self._items.items() if k not in fresh}
            self._items = fresh
        return removed
