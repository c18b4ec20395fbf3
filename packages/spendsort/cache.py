"""In-process classification cache.

Keys are ``(lowercased description, direction)``; values are category pairs.
The cache is owned by a :class:`~spendsort.classify.CategoryClassifier` and
passed in at construction, so separate classifiers (and tests) never share
state by accident.

Access is guarded by a lock. Two threads that miss on the same key may both
compute a verdict; the later ``put`` wins and both values are valid pairs.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import TypeAlias

from .models import Direction
from .taxonomy import CategoryPair

CacheKey: TypeAlias = tuple[str, Direction]


def cache_key(description: str, direction: Direction) -> CacheKey:
    return (description.lower(), Direction(direction))


class ClassificationCache:
    """Thread-safe map from cache key to category pair.

    ``maxsize=None`` keeps every entry for the life of the process; a positive
    ``maxsize`` evicts the least recently used entry.
    """

    def __init__(self, maxsize: int | None = None) -> None:
        if maxsize is not None and maxsize <= 0:
            raise ValueError("maxsize must be positive when set")
        self._maxsize = maxsize
        self._data: OrderedDict[CacheKey, CategoryPair] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, description: str, direction: Direction) -> CategoryPair | None:
        key = cache_key(description, direction)
        with self._lock:
            pair = self._data.get(key)
            if pair is None:
                self.misses += 1
                return None
            self._data.move_to_end(key)
            self.hits += 1
            return pair

    def put(self, description: str, direction: Direction, pair: CategoryPair) -> None:
        key = cache_key(description, direction)
        with self._lock:
            self._data[key] = pair
            self._data.move_to_end(key)
            if self._maxsize is not None:
                while len(self._data) > self._maxsize:
                    self._data.popitem(last=False)

    def discard(self, description: str, direction: Direction) -> None:
        with self._lock:
            self._data.pop(cache_key(description, direction), None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        description, direction = key
        if not isinstance(description, str):
            return False
        try:
            k = cache_key(description, direction)
        except ValueError:
            return False
        with self._lock:
            return k in self._data


__all__ = ["CacheKey", "ClassificationCache", "cache_key"]
