"""Bounded in-memory caches for hosting API objects."""

from collections import OrderedDict
from collections.abc import Hashable

from histofy.utils.logging import get_logger

logger = get_logger(__name__)


class BoundedCache[K: Hashable, V]:
    """Least-recently-used mapping with a fixed capacity.

    Reads refresh an entry's recency; inserting beyond ``max_entries`` evicts
    the least recently used entry.
    """

    def __init__(self, name: str, max_entries: int = 100) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.name = name
        self.max_entries = max_entries
        self._entries: OrderedDict[K, V] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: K) -> V | None:
        if key not in self._entries:
            self.misses += 1
            return None
        self.hits += 1
        self._entries.move_to_end(key)
        return self._entries[key]

    def put(self, key: K, value: V) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = value
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.trace("Cache eviction", cache=self.name, key=str(evicted))

    def clear(self) -> None:
        if self._entries:
            logger.debug("Cache cleared", cache=self.name, entries=len(self._entries))
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
