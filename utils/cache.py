"""Bounded FIFO cache."""
import time
from collections import OrderedDict


class BoundedCache:
    """Key-value cache with a size ceiling and optional per-entry TTL.

    When full, the oldest inserted entry is evicted first.
    """

    def __init__(self, max_size=100, ttl=None):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl = ttl
        self._store = OrderedDict()

    def get(self, key, default=None):
        """Get value if present and not expired."""
        entry = self._store.get(key)
        if entry is None:
            return default
        if entry["expires"] is not None and time.time() > entry["expires"]:
            del self._store[key]
            return default
        return entry["value"]

    def set(self, key, value):
        """Store value, evicting the oldest entry when over capacity."""
        if key in self._store:
            del self._store[key]
        self._store[key] = {
            "value": value,
            "expires": time.time() + self.ttl if self.ttl else None,
        }
        while len(self._store) > self.max_size:
            self._store.popitem(last=False)

    def invalidate(self, key):
        """Remove a specific key."""
        self._store.pop(key, None)

    def clear(self):
        """Remove all entries."""
        self._store.clear()

    def __contains__(self, key):
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self):
        return len(self._store)


_MISSING = object()
