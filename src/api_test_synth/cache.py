"""In-memory TTL caches shared by one generation process.

Values stored here must be immutable (frozen pydantic models or tuples).
Cache contents are never a source of truth: a failed read is a miss and a
failed write is dropped.
"""

from __future__ import annotations

import threading
from time import monotonic
from typing import Any, Dict, Optional, Tuple

from api_test_synth.exceptions import CacheError
from api_test_synth.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 3600.0


class TTLCache:
    """Thread-safe in-memory TTL cache with optional background purge.

    - Capacity-bounded; evicts entries closest to expiry first when over capacity.
    - Insert-or-overwrite; values are never mutated in place.
    - A daemon thread purges expired entries every N seconds so memory is
      reclaimed even when there are no reads.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_items: int = 4096,
        auto_purge_interval_seconds: Optional[float] = 60.0,
    ) -> None:
        self._data: Dict[Any, Tuple[float, Any]] = {}
        self._ttl = ttl_seconds
        self._max = max_items
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._auto_interval = auto_purge_interval_seconds
        self._thread: Optional[threading.Thread] = None
        self.hits = 0
        self.misses = 0
        if self._auto_interval and self._auto_interval > 0:
            self._thread = threading.Thread(target=self._auto_purge_loop, daemon=True)
            self._thread.start()

    def _auto_purge_loop(self) -> None:
        while not self._stop.wait(self._auto_interval):
            try:
                self.purge()
            except Exception:
                logger.exception("Cache purge failed")

    def stop(self) -> None:
        self._stop.set()

    def purge(self) -> int:
        """Drop expired entries and enforce capacity. Returns the number removed."""
        now = monotonic()
        with self._lock:
            expired = [k for k, (exp, _) in self._data.items() if exp < now]
            for k in expired:
                self._data.pop(k, None)
            removed = len(expired)
            if len(self._data) > self._max:
                over = len(self._data) - self._max
                for k, _ in sorted(self._data.items(), key=lambda kv: kv[1][0])[:over]:
                    self._data.pop(k, None)
                removed += over
        return removed

    def get(self, key: Any) -> Optional[Any]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                self.misses += 1
                return None
            exp, val = item
            if exp < monotonic():
                self._data.pop(key, None)
                self.misses += 1
                return None
            self.hits += 1
            return val

    def set(self, key: Any, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._data[key] = (monotonic() + float(ttl), value)
            over_capacity = len(self._data) > self._max
        if over_capacity:
            self.purge()

    def clear(self, key: Any) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear_all(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class CacheService:
    """Owns the constraint, analysis and suite caches for one process.

    Built once and handed to the components that need it; ``shutdown``
    stops the purge threads.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, auto_purge_interval_seconds: Optional[float] = 60.0):
        self.constraints = TTLCache(ttl_seconds, auto_purge_interval_seconds=auto_purge_interval_seconds)
        self.analyses = TTLCache(ttl_seconds, auto_purge_interval_seconds=auto_purge_interval_seconds)
        self.suites = TTLCache(ttl_seconds, max_items=1024, auto_purge_interval_seconds=auto_purge_interval_seconds)
        self._closed = False

    def _caches(self) -> tuple[TTLCache, ...]:
        return (self.constraints, self.analyses, self.suites)

    def clear(self) -> None:
        for cache in self._caches():
            cache.clear_all()

    def shutdown(self) -> None:
        for cache in self._caches():
            cache.stop()
        self.clear()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> dict[str, dict[str, int]]:
        return {
            name: {"size": len(cache), "hits": cache.hits, "misses": cache.misses}
            for name, cache in zip(("constraints", "analyses", "suites"), self._caches())
        }


def safe_get(cache: Optional[TTLCache], key: Any) -> Any:
    """Read through a cache, treating any failure as a miss."""
    if cache is None:
        return None
    try:
        return cache.get(key)
    except Exception as e:
        logger.warning("%s", CacheError("Cache read failed, treating as miss", context={"key": str(key)}, original_error=e))
        return None


def safe_set(cache: Optional[TTLCache], key: Any, value: Any) -> None:
    """Write through a cache, dropping the write on failure."""
    if cache is None:
        return
    try:
        cache.set(key, value)
    except Exception as e:
        logger.warning("%s", CacheError("Cache write failed, dropping entry", context={"key": str(key)}, original_error=e))
