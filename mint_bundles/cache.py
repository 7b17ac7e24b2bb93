"""
Analysis cache – short-lived TTL cache with single-flight deduplication.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from typing import Any, Callable, Hashable


class AnalysisCache:
    """
    Caches successful analysis results for ``ttl`` seconds, holding at most
    ``max_size`` entries (least recently used evicted first).

    Concurrent callers asking for the same key while a computation is running
    wait on that computation instead of starting their own. Results for which
    ``should_cache`` returns False (failures) are handed to every waiter but
    not stored.
    """

    def __init__(
        self,
        ttl: float = 300,
        clock: Callable[[], float] = time.monotonic,
        should_cache: Callable[[Any], bool] | None = None,
        max_size: int = 256,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        self._should_cache = should_cache or (lambda value: True)
        self._lock = threading.Lock()
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()
        self._in_flight: dict[Hashable, Future] = {}

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        with self._lock:
            hit = self._entries.get(key)
            if hit is not None:
                stored_at, value = hit
                if self._clock() - stored_at < self.ttl:
                    self._entries.move_to_end(key)
                    return value
                del self._entries[key]

            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future

        if not owner:
            return future.result()

        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                del self._in_flight[key]
            future.set_exception(exc)
            raise

        with self._lock:
            del self._in_flight[key]
            if self._should_cache(value):
                self._store(key, value)
        future.set_result(value)
        return value

    def cleanup(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            return self._purge_expired()

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # Callers below must hold self._lock.

    def _store(self, key: Hashable, value: Any) -> None:
        self._purge_expired()
        self._entries[key] = (self._clock(), value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def _purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl]
        for k in expired:
            del self._entries[k]
        return len(expired)
