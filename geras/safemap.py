"""A small thread-safe string-keyed map."""

from __future__ import annotations

import threading
from typing import Callable, Generic, Iterator, TypeVar

T = TypeVar("T")


class TypedMap(Generic[T]):
    """A dictionary guarded by a lock, safe to share between threads."""

    def __init__(self) -> None:
        self._data: dict[str, T] = {}
        self._lock = threading.Lock()

    def store(self, key: str, value: T) -> None:
        """Save ``value`` under ``key``."""
        with self._lock:
            self._data[key] = value

    def load(self, key: str) -> T | None:
        """Return the value stored under ``key``, or None if there is none."""
        with self._lock:
            return self._data.get(key)

    def delete(self, key: str) -> None:
        """Remove ``key``; a missing key is ignored."""
        with self._lock:
            self._data.pop(key, None)

    def range(self, fn: Callable[[str, T], bool]) -> None:
        """Call ``fn(key, value)`` for every entry until it returns False."""
        for key, value in self._snapshot():
            if not fn(key, value):
                break

    def _snapshot(self) -> list[tuple[str, T]]:
        with self._lock:
            return list(self._data.items())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter([key for key, _ in self._snapshot()])