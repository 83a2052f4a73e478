"""
In-process TTL cache.

Resolvers receive a cache instance from the service container instead of
keeping module-level dictionaries, so lifetime and invalidation stay explicit.

Expired entries are dropped on read, and swept from the whole table on the
first write after each sweep interval, so keys that are never read again do
not accumulate.
"""
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

_MISSING = object()


class TTLCache:
    def __init__(
        self,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: Optional[float] = None,
    ):
        self._default_ttl = default_ttl
        self._clock = clock
        self._sweep_interval = default_ttl if sweep_interval is None else sweep_interval
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + self._sweep_interval

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)
            self._entries[key] = (now + ttl, value)

    def _sweep(self, now: float) -> int:
        # caller holds the lock
        expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
        for k in expired:
            del self._entries[k]
        self._next_sweep = now + self._sweep_interval
        return len(expired)

    def get_or_set(self, key: str, loader: Callable[[], Any], ttl: Optional[float] = None) -> Any:
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = loader()
            if value is not None:
                self.set(key, value, ttl)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        # An empty cache is still a cache
        return True
