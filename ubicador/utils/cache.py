"""
Caché LRU con TTL para las listas del catálogo.
"""

import time
from collections import OrderedDict
from typing import Generic, Hashable, TypeVar

T = TypeVar("T")


class LRUCache(Generic[T]):
    """Caché LRU (Least Recently Used) en memoria con TTL (Time To Live).

    Las listas del catálogo cambian muy poco, así que se guardan por
    (nivel, id del padre) y expiran tras `ttl` segundos. Un `maxsize` de 0
    desactiva la caché.
    """

    def __init__(self, maxsize: int = 256, ttl: float = 3600):
        self.maxsize = maxsize
        self.ttl = ttl
        self.hits = 0
        self.misses = 0
        self._cache: OrderedDict[Hashable, T] = OrderedDict()
        self._timestamps: dict[Hashable, float] = {}

    @property
    def enabled(self) -> bool:
        return self.maxsize > 0

    def get(self, key: Hashable) -> T | None:
        """Devuelve el valor si existe y no ha expirado; None en otro caso."""
        if key not in self._cache:
            self.misses += 1
            return None

        if time.monotonic() - self._timestamps[key] > self.ttl:
            self.pop(key)
            self.misses += 1
            return None

        self._cache.move_to_end(key)
        self.hits += 1
        return self._cache[key]

    def set(self, key: Hashable, value: T) -> None:
        if not self.enabled:
            return
        if key in self._cache:
            self._cache.move_to_end(key)

        self._cache[key] = value
        self._timestamps[key] = time.monotonic()

        if len(self._cache) > self.maxsize:
            # El primero del OrderedDict es el menos usado recientemente
            oldest_key = next(iter(self._cache))
            self.pop(oldest_key)

    def pop(self, key: Hashable) -> None:
        self._cache.pop(key, None)
        self._timestamps.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()
        self._timestamps.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._cache

    def __len__(self) -> int:
        return len(self._cache)
