# Overview: Explicit time-boxed lookup cache passed to services that want one.

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Hashable


_MISSING = object()


class TTLCache:
    """
    Small in-memory cache with per-entry expiry.

    There is no module-level instance: the application factory creates one
    and stores it on ``app.extensions["stockledger_cache"]``, and callers pass
    it explicitly. Writers that change the underlying data call
    ``invalidate(key)``.
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return default
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value, calling loader on a miss. None results are not cached."""
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = loader()
        if value is not None:
            self.set(key, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for stored_at, _ in self._entries.values() if now - stored_at < self.ttl_seconds)
