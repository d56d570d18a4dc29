"""In-process TTL cache with an injectable clock."""
import threading
import time
from typing import Any, Callable, Hashable, Optional

from cachetools import TTLCache


class TTLStore:
    """Thread-safe TTL cache.

    Wraps ``cachetools.TTLCache`` and guards it with a lock, since the
    underlying cache is not safe for concurrent use. The ``timer`` is
    injected so tests can drive expiry with a fake clock.

    Args:
        ttl: Seconds an entry stays valid
        maxsize: Maximum number of entries before LRU eviction
        timer: Callable returning the current time in seconds
    """

    def __init__(self, ttl: float, maxsize: int = 1024, timer: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Optional[Any]:
        with self._lock:
            return self._cache.get(key, default)

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._cache[key] = value

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
