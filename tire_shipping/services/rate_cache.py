"""
Shipping Rate Cache

Purpose:
- Avoids re-quoting the carrier while a customer re-renders checkout
- Cache key: MD5 hash of provider, origin/destination postal+country,
  sorted package dimensions and requested service type
- TTL: 1 hour (SHIPPING_RATE_CACHE_TTL_SECONDS)
- Max size: LRU eviction once full

Only live carrier rates are stored; degraded fallback quotes never are.
"""
import hashlib
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple

from tire_shipping.modules.shipping.carriers.base import RateQuote, RateRequest

logger = logging.getLogger(__name__)


class RateCache:
    """
    LRU cache with TTL for carrier rate quotes.

    Safe for single-threaded async usage: no awaits inside cache operations.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        max_size: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._cache: "OrderedDict[str, Tuple[float, List[RateQuote]]]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def make_key(self, request: RateRequest, provider_name: str) -> str:
        """
        Generate cache key from the parts of a request that affect price.

        Package order does not matter; contact details do not either.
        """
        dims = sorted(
            f"{p.weight}x{p.length}x{p.width}x{p.height}" for p in request.packages
        )
        service = request.service_type.value if request.service_type else "all"
        key_parts = [
            provider_name.upper(),
            f"{request.shipper.postal_code}-{request.shipper.country_code}",
            f"{request.recipient.postal_code}-{request.recipient.country_code}",
            ",".join(dims),
            service,
        ]
        return hashlib.md5("|".join(key_parts).encode()).hexdigest()

    def get(self, request: RateRequest, provider_name: str) -> Optional[List[RateQuote]]:
        key = self.make_key(request, provider_name)

        if key not in self._cache:
            self._misses += 1
            return None

        stored_at, rates = self._cache[key]

        if self._clock() - stored_at > self.ttl_seconds:
            del self._cache[key]
            self._misses += 1
            logger.debug(f"[RATE_CACHE] Expired: {provider_name} {key[:8]}")
            return None

        self._cache.move_to_end(key)
        self._hits += 1
        logger.debug(f"[RATE_CACHE] Hit: {provider_name} {key[:8]} ({len(rates)} rates)")
        return list(rates)

    def set(self, request: RateRequest, provider_name: str, rates: List[RateQuote]) -> None:
        key = self.make_key(request, provider_name)

        if key in self._cache:
            del self._cache[key]

        while len(self._cache) >= self.max_size:
            self._cache.popitem(last=False)
            self._evictions += 1
            logger.debug("[RATE_CACHE] Evicted oldest entry (capacity)")

        self._cache[key] = (self._clock(), list(rates))

    def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 4) if total > 0 else 0.0,
            "size": len(self._cache),
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
            "evictions": self._evictions,
        }

    def clear(self) -> None:
        """Clear all cached entries."""
        count = len(self._cache)
        self._cache.clear()
        logger.info(f"[RATE_CACHE] Cleared {count} entries")
