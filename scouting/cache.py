from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

from .config import CACHE_MAX_ENTRIES


class TtlCache:
    """In-memory key/value cache with a per-entry TTL.

    Once the cache holds more than ``max_entries`` items the oldest inserted
    entry is evicted. Expired entries are dropped lazily on read.
    """

    def __init__(
        self,
        max_entries: int = CACHE_MAX_ENTRIES,
        default_ttl_s: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.default_ttl_s = default_ttl_s
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() > expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        expires_at = self._clock() + (ttl_s if ttl_s is not None else self.default_ttl_s)
        self._entries.pop(key, None)
        self._entries[key] = (expires_at, value)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None
