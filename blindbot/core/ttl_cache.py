"""
Pull-through TTL cache

Holds one (value, expiry) pair and refreshes it through a loader callable
when it has expired. Instances are owned by the service container rather
than living at module level.
"""
import threading
import time
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar('T')


class TTLCache(Generic[T]):
    """Single-value cache with a time-based expiry."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: Optional[T] = None
        self._expires_at: float = 0.0
        self._lock = threading.Lock()

    def get(self, loader: Callable[[], T]) -> T:
        """
        Return the cached value, calling loader when the entry is missing or stale.

        Exceptions raised by the loader propagate and leave the previous entry untouched.
        """
        with self._lock:
            now = self._clock()
            if self._value is not None and now < self._expires_at:
                return self._value

            value = loader()
            self._value = value
            self._expires_at = now + self.ttl_seconds
            return value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._expires_at = 0.0
