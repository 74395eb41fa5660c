"""Processing cache and in-flight registry, both keyed by image content hash.

Both are mutated only from the event loop thread.
"""

import asyncio
from collections import OrderedDict
from typing import Dict, List, Optional
from core.logging import log
from core.config import settings
from postprocessing.models import MrzResult


class ProcessingCache:
    """Bounded map of content hash → MrzResult; inserting at capacity evicts the oldest key."""

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size if max_size is not None else settings.CACHE_MAX_SIZE
        if self.max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {self.max_size}")
        self._entries: "OrderedDict[str, MrzResult]" = OrderedDict()

    def get(self, key: str) -> Optional[MrzResult]:
        return self._entries.get(key)

    def set(self, key: str, result: MrzResult) -> None:
        if key in self._entries:
            self._entries[key] = result
            return
        if len(self._entries) >= self.max_size:
            oldest, _ = self._entries.popitem(last=False)
            log.debug(f"Cache full, evicted {oldest[:12]}")
        self._entries[key] = result

    def evict(self, key: str) -> bool:
        """Remove ``key``; returns whether it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class InFlightRegistry:
    """Content hash → running pipeline task."""

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def get(self, key: str) -> Optional[asyncio.Task]:
        return self._tasks.get(key)

    def register(self, key: str, task: asyncio.Task) -> None:
        self._tasks[key] = task

    def discard(self, key: str, task: Optional[asyncio.Task] = None) -> None:
        """Remove ``key``; when ``task`` is given, only if it is still the registered one."""
        if task is not None and self._tasks.get(key) is not task:
            return
        self._tasks.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
