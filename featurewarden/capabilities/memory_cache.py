"""
In-process capability cache.

One slot: the most recent snapshot and the project it belongs to. An
entry is served while its age is at most the TTL; a different project
path is always a miss. The slot is not locked.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from featurewarden.models.capabilities import CapabilitySnapshot

logger = logging.getLogger(__name__)

MEMORY_CACHE_TTL_MS = 60000


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class MemoryCacheEntry:
    project_path: str
    snapshot: CapabilitySnapshot
    captured_at_ms: int


class MemoryCache:
    """Single-slot TTL cache with an injectable clock.

    Args:
        ttl_ms: Maximum entry age in milliseconds
        clock: Returns the current time in milliseconds
    """

    def __init__(self, ttl_ms: int = MEMORY_CACHE_TTL_MS, clock: Optional[Callable[[], int]] = None):
        self.ttl_ms = ttl_ms
        self.clock = clock or _now_ms
        self._entry: Optional[MemoryCacheEntry] = None

    def get(self, project_path: str) -> Optional[CapabilitySnapshot]:
        entry = self._entry
        if entry is None or entry.project_path != project_path:
            return None
        age = self.clock() - entry.captured_at_ms
        if age > self.ttl_ms:
            logger.debug(f"Memory entry for {project_path} expired ({age}ms old)")
            return None
        return entry.snapshot

    def set(self, project_path: str, snapshot: CapabilitySnapshot) -> None:
        self._entry = MemoryCacheEntry(project_path, snapshot, self.clock())

    def clear(self) -> None:
        self._entry = None


# Process-wide default
default_memory_cache = MemoryCache()


def clear_capabilities_cache() -> None:
    """Reset the process-wide memory cache."""
    default_memory_cache.clear()
