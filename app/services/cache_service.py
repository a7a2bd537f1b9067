"""Process-wide TTL cache used by the enrichment and catalog services."""
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from cachetools import TLRUCache

SEVEN_DAYS = 7 * 24 * 60 * 60
ONE_HOUR = 60 * 60


def _entry_expiry(_key, entry: Tuple[Any, float], now: float) -> float:
    return now + entry[1]


class TTLCacheService:
    """Thin wrapper around :class:`cachetools.TLRUCache` with per-entry TTLs.

    Build one instance per cache at process start and pass it to the services
    that need it.  Tests inject a fake *timer* to move time forward.

    Args:
        default_ttl: Lifetime in seconds used when :meth:`set` gets no ``ttl``.
        maxsize:     Maximum number of live entries (least recently used
                     entries are evicted first).
        timer:       Monotonic clock returning seconds.
        name:        Label used in log messages.
    """

    def __init__(self, default_ttl: float = SEVEN_DAYS, maxsize: int = 10000,
                 timer: Callable[[], float] = time.monotonic,
                 name: str = 'cache') -> None:
        self.default_ttl = default_ttl
        self.name = name
        self._cache = TLRUCache(maxsize=maxsize, ttu=_entry_expiry, timer=timer)
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._log = logging.getLogger(f'gameo.cache.{name}')

    def get(self, key: str) -> Optional[Any]:
        """Return the live value for *key*, or ``None`` when absent or expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry[0]

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store *value* under *key* for *ttl* seconds."""
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._cache[key] = (value, ttl)
        self._log.debug("SET %s (ttl=%ss)", key, ttl)

    def delete(self, key: str) -> bool:
        """Remove *key*. Returns ``True`` if a live entry was removed."""
        with self._lock:
            if key not in self._cache:
                return False
            del self._cache[key]
        self._log.debug("DEL %s", key)
        return True

    def flush(self) -> int:
        """Remove every entry and return how many live entries were dropped."""
        with self._lock:
            self._cache.expire()
            count = len(self._cache)
            self._cache.clear()
        self._log.info("Flushed %d entries", count)
        return count

    def keys(self) -> List[str]:
        with self._lock:
            self._cache.expire()
            return list(self._cache.keys())

    def stats(self) -> Dict[str, int]:
        """Return ``keys``, ``hits`` and ``misses`` counters."""
        with self._lock:
            self._cache.expire()
            return {
                'keys': len(self._cache),
                'hits': self._hits,
                'misses': self._misses,
            }
