"""Short-TTL read-through cache for option lists.

WHY: Pipelines and boards change rarely, but Slack asks for them every
time a dropdown opens. Caching the empty-search result for a minute or
ten keeps option responses well inside the 3 second budget.

HOW: A dict of CacheEntry values keyed by (entity_kind, parent_id,
search_is_empty). get_or_fetch() returns a fresh entry or awaits the
fetch coroutine and stores its result. The clock is injectable so tests
can move time.

RULES:
- Entries are replaced wholesale, never merged
- Whoever misses first populates the entry (last write wins)
- No lock: a single dict assignment is atomic
- Only empty-search lookups are cached; callers pass search_is_empty
- Empty results are never stored, so a transient empty answer is retried
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, bool]


def make_key(entity_kind: str, parent_id: Optional[str] = None, search_is_empty: bool = True) -> CacheKey:
    return (entity_kind, parent_id or "", search_is_empty)


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    fetched_at: float


class OptionCache:
    """Process-wide TTL cache, constructed once and injected into adapters."""

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def get(self, key: CacheKey) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self._ttl_seconds:
            return None
        return entry.value

    def put(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())

    async def get_or_fetch(
        self,
        key: CacheKey,
        fetch: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value for key, fetching it on a miss."""
        cached = self.get(key)
        if cached is not None:
            return cached

        value = await fetch()
        if value:
            self.put(key, value)
            logger.debug("Cache filled for %s", key)
        return value

    def clear(self) -> None:
        self._entries.clear()
