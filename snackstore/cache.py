"""Key-value caches for rendered responses."""

from __future__ import annotations

import abc
import threading
import time
from datetime import timedelta
from typing import Any, Callable

TTL = "timedelta | float | None"


def _ttl_seconds(ttl: timedelta | float | None) -> float:
    if ttl is None:
        return 0.0
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)


class Cache(abc.ABC):
    """A string cache; a ttl of zero or None keeps the entry without expiry."""

    @abc.abstractmethod
    def get(self, key: str) -> str | None:
        """Return the cached value, or None if it is absent."""

    @abc.abstractmethod
    def set(self, key: str, value: str, ttl: timedelta | float | None) -> None:
        """Store a value for the given time to live."""

    @abc.abstractmethod
    def delete(self, key: str) -> None:
        """Remove one key."""

    @abc.abstractmethod
    def delete_by_prefix(self, prefix: str) -> None:
        """Remove every key starting with the prefix."""


class RedisCache(Cache):
    """Cache backed by a Redis client."""

    _SCAN_COUNT = 100

    def __init__(self, client: Any):
        self.client = client

    def get(self, key: str) -> str | None:
        value = self.client.get(key)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    def set(self, key: str, value: str, ttl: timedelta | float | None) -> None:
        seconds = _ttl_seconds(ttl)
        if seconds > 0:
            self.client.set(key, value, px=max(1, int(seconds * 1000)))
        else:
            self.client.set(key, value)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def delete_by_prefix(self, prefix: str) -> None:
        cursor = 0
        pattern = prefix + "*"
        while True:
            cursor, keys = self.client.scan(cursor=cursor, match=pattern, count=self._SCAN_COUNT)
            if keys:
                self.client.delete(*keys)
            if int(cursor) == 0:
                break


class MemoryCache(Cache):
    """In-process cache, safe to share between threads."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._items: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            value, expires = item
            if expires is not None and self._clock() >= expires:
                del self._items[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: timedelta | float | None) -> None:
        seconds = _ttl_seconds(ttl)
        expires = self._clock() + seconds if seconds > 0 else None
        with self._lock:
            self._items[key] = (value, expires)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def delete_by_prefix(self, prefix: str) -> None:
        with self._lock:
            for key in [key for key in self._items if key.startswith(prefix)]:
                del self._items[key]