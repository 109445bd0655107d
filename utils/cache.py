"""
In-process caching with per-entry expiry and size-bounded eviction.
"""

import base64
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from utils.config_manager import get_cache_config

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    data: Any
    timestamp: float
    expiry: float


class CacheManager:
    """Key/value cache with TTL; when full, the oldest inserted entry is evicted"""

    def __init__(self, ttl: Optional[float] = None, max_size: Optional[int] = None,
                 clock: Callable[[], float] = time.time):
        config = get_cache_config()
        self.default_ttl = config.default_ttl_seconds if ttl is None else ttl
        self.max_size = config.max_size if max_size is None else max_size
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        if self.max_size <= 0:
            return
        now = self._clock()
        if key not in self._entries and len(self._entries) >= self.max_size:
            oldest_key, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache full, evicted {oldest_key}")
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(key=key, data=data, timestamp=now, expiry=now + ttl)

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expiry:
            self.delete(key)
            return None
        return entry.data

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._clock() > entry.expiry:
            self.delete(key)
            return False
        return True

    def get_stats(self) -> Dict[str, Any]:
        now = self._clock()
        return {
            'size': len(self._entries),
            'max_size': self.max_size,
            'entries': [
                {
                    'key': entry.key,
                    'timestamp': entry.timestamp,
                    'expiry': entry.expiry,
                    'expired': now > entry.expiry,
                }
                for entry in self._entries.values()
            ],
        }

    def cleanup(self) -> int:
        """Drop expired entries and return how many were removed"""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expiry]
        for key in expired:
            del self._entries[key]
        return len(expired)


class ApiCache:
    """Caches responses keyed by method, url and a short hash of the body"""

    def __init__(self, clock: Callable[[], float] = time.time):
        config = get_cache_config()
        self.cache = CacheManager(ttl=config.api_ttl_seconds, max_size=config.api_max_size, clock=clock)

    @staticmethod
    def generate_key(url: str, method: str, body: Any = None) -> str:
        body_hash = ''
        if body:
            encoded = json.dumps(body, sort_keys=True, default=str).encode('utf-8')
            body_hash = base64.b64encode(encoded).decode('ascii')[:16]
        return f"{method}:{url}:{body_hash}"

    def cache_response(self, url: str, method: str, body: Any, response: Any, ttl: Optional[float] = None) -> None:
        self.cache.set(self.generate_key(url, method, body), response, ttl=ttl)

    def get_cached_response(self, url: str, method: str, body: Any = None) -> Any:
        return self.cache.get(self.generate_key(url, method, body))

    def has_response(self, url: str, method: str, body: Any = None) -> bool:
        return self.cache.has(self.generate_key(url, method, body))

    def invalidate(self, url: Optional[str] = None, method: Optional[str] = None) -> None:
        # Per-endpoint invalidation is not tracked; everything is dropped
        self.cache.clear()


class SearchCache:
    """Search results keyed by query and filters (5 minutes, 100 entries)"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.cache = CacheManager(ttl=300, max_size=100, clock=clock)

    @staticmethod
    def generate_search_key(query: str, filters: Any) -> str:
        return f"search_{query}_{json.dumps(filters, sort_keys=True, default=str)}"

    def cache_search_results(self, query: str, filters: Any, results: Any) -> None:
        self.cache.set(self.generate_search_key(query, filters), results)

    def get_cached_search_results(self, query: str, filters: Any) -> Any:
        return self.cache.get(self.generate_search_key(query, filters))

    def invalidate_search(self) -> None:
        self.cache.clear()


# Global cache instances
cache = CacheManager()
api_cache = ApiCache()
search_cache = SearchCache()
