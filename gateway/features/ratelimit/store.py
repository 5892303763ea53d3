"""
gateway/features/ratelimit/store.py

Counter storage for the fixed-window limiter.

The limiter only talks to the CounterStore protocol (get / set /
compare_and_swap), so a shared store can replace the in-process one
without changing the algorithm. The in-process store is bounded: it
evicts least-recently-used keys past ``max_entries`` and drops expired
windows on sweep.
"""

import threading
from collections import OrderedDict
from typing import Optional, Protocol

from gateway.models.rate_limit import RateLimitCounter


class CounterStore(Protocol):
    def get(self, key: str) -> Optional[RateLimitCounter]:
        ...

    def set(self, key: str, counter: RateLimitCounter) -> None:
        ...

    def compare_and_swap(
        self,
        key: str,
        expected: Optional[RateLimitCounter],
        new: RateLimitCounter,
    ) -> bool:
        """Store ``new`` only if the current value equals ``expected`` (None = absent)."""
        ...

    def delete(self, key: str) -> None:
        ...

    def sweep(self, expired_before: float) -> int:
        """Drop counters whose window ended before ``expired_before``; return how many."""
        ...


class InMemoryCounterStore:
    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries if max_entries and max_entries > 0 else None
        self._counters: "OrderedDict[str, RateLimitCounter]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[RateLimitCounter]:
        with self._lock:
            return self._counters.get(key)

    def set(self, key: str, counter: RateLimitCounter) -> None:
        with self._lock:
            self._put(key, counter)

    def compare_and_swap(
        self,
        key: str,
        expected: Optional[RateLimitCounter],
        new: RateLimitCounter,
    ) -> bool:
        with self._lock:
            if self._counters.get(key) != expected:
                return False
            self._put(key, new)
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    def sweep(self, expired_before: float) -> int:
        with self._lock:
            stale = [k for k, c in self._counters.items() if c.window_reset_at < expired_before]
            for key in stale:
                del self._counters[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._counters

    def _put(self, key: str, counter: RateLimitCounter) -> None:
        # caller holds the lock
        self._counters[key] = counter
        self._counters.move_to_end(key)
        if self.max_entries is not None:
            while len(self._counters) > self.max_entries:
                self._counters.popitem(last=False)
