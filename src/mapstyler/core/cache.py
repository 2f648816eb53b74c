"""In-memory caches shared by the extent calculators."""

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Any, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


class ProcessCache:
    """
    Key/value cache living for the lifetime of the process.

    With the default arguments entries are never evicted or expired. A
    ``max_entries`` bound evicts the oldest inserted entry first; a
    ``ttl_seconds`` bound expires entries lazily when they are read.

    ``locked(key)`` holds one ``asyncio.Lock`` per key so callers can wrap
    check-then-insert sequences and avoid fetching the same URL twice. A
    key's lock only exists while some task holds or waits for it.
    """

    def __init__(
        self,
        name: str = "cache",
        max_entries: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
    ):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.name = name
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._entries: "OrderedDict[Hashable, tuple]" = OrderedDict()
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._lock_users: Dict[Hashable, int] = {}

    def _expired(self, stored_at: float) -> bool:
        return self.ttl_seconds is not None and time.monotonic() - stored_at > self.ttl_seconds

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._expired(entry[1]):
            del self._entries[key]
            return False
        return True

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value for key, or default when missing/expired."""
        if key not in self:
            return default
        return self._entries[key][0]

    def set(self, key: Hashable, value: Any) -> None:
        """Store a value, evicting the oldest entry when the cache is full."""
        self._entries.pop(key, None)
        self._entries[key] = (value, time.monotonic())
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"{self.name}: evicted {evicted}")

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def locked(self, key: Hashable):
        """Hold the lock for one key, dropping it once nobody needs it."""
        lock = self._lock_for(key)
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users.pop(key) - 1
            if users:
                self._lock_users[key] = users
            elif self._locks.get(key) is lock:
                del self._locks[key]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self):
        return f"ProcessCache(name='{self.name}', entries={len(self._entries)})"
