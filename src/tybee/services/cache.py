"""CacheService - Redis caching with staleness tracking.

Two tiers share one Redis keyspace:

- ``get`` / ``put`` store plain JSON values with an optional TTL. Used for
  provider lookups (BoardGameGeek search and game details, spreadsheet rows)
  where an entry is either present or not.
- ``get_with_metadata`` / ``put_with_metadata`` wrap the value in a
  CacheEntry envelope (payload, timestamp, ttl, version) so readers can tell
  fresh from stale data. Redis expiry is set to twice the logical TTL, which
  keeps stale entries readable until the hard cutoff.

Freshness for an entry of logical TTL ``T`` and age ``a``:
    a < T        fresh
    T <= a < 2T  stale (serve it, refresh in the background)
    a >= 2T      expired (treated as absent)

The cache is a performance layer: every method logs and swallows backend or
decoding errors and degrades to a miss.

Cache Key Types:
    - catalog - Enriched game catalog (metadata envelope, 30 min TTL)
    - sheets:games - Raw inventory rows (5 min TTL)
    - bgg:search:{normalized name} - BoardGameGeek search results (7d TTL)
    - bgg:game:{id} - BoardGameGeek game details (24h TTL)
"""

import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


class Freshness(str, Enum):
    """Age classification of a metadata-tagged cache entry."""

    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


def classify_freshness(ttl_ms: int, age_ms: float) -> Freshness:
    """Classify an entry of logical TTL ``ttl_ms`` that is ``age_ms`` old."""
    if age_ms < ttl_ms:
        return Freshness.FRESH
    if age_ms < 2 * ttl_ms:
        return Freshness.STALE
    return Freshness.EXPIRED


@dataclass
class CacheEntry:
    """Envelope stored by ``put_with_metadata``.

    Attributes:
        data: JSON-serializable payload
        timestamp: Creation time in epoch milliseconds
        ttl: Logical time-to-live in milliseconds
        version: Optional version tag set by the writer
    """

    data: Any
    timestamp: int
    ttl: int
    version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for caching."""
        return {
            "data": self.data,
            "timestamp": self.timestamp,
            "ttl": self.ttl,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        """Create from cached dict.

        Raises:
            KeyError, TypeError, ValueError: If the envelope is malformed
        """
        return cls(
            data=data["data"],
            timestamp=int(data["timestamp"]),
            ttl=int(data["ttl"]),
            version=data.get("version"),
        )

    def age_ms(self, now_ms: float) -> float:
        return now_ms - self.timestamp

    def freshness(self, now_ms: float) -> Freshness:
        return classify_freshness(self.ttl, self.age_ms(now_ms))


@dataclass
class CacheResult:
    """Outcome of ``get_with_metadata``."""

    data: Any = None
    fresh: bool = False
    stale: bool = False
    exists: bool = False
    version: str | None = None


class Cache(Protocol):
    """Interface shared by CacheService and NullCacheService."""

    async def get(self, key: str) -> Any | None: ...

    async def put(self, key: str, value: Any, ttl_seconds: int | None = None) -> None: ...

    async def get_with_metadata(self, key: str) -> CacheResult: ...

    async def put_with_metadata(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        version: str | None = None,
    ) -> None: ...

    async def delete(self, key: str) -> None: ...


class CacheService:
    """Redis-backed cache with plain and staleness-tracked entries.

    The enriched catalog (``CATALOG_KEY``) uses the metadata envelope so
    readers can tell fresh from stale; the sheet rows and BoardGameGeek
    lookups are plain entries with a Redis TTL. Point Redis at
    ``maxmemory-policy allkeys-lru`` so evictions only ever cost a refetch.
    """

    CATALOG_KEY = "catalog"
    SHEETS_KEY = "sheets:games"

    def __init__(self, redis: Redis, clock: Callable[[], float] = time.time) -> None:
        """Initialize the cache service.

        Args:
            redis: Async Redis client
            clock: Returns the current time in epoch seconds
        """
        self.redis = redis
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # -------------------------------------------------------------------------
    # Plain values
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Get a plain value.

        Returns:
            The decoded value, or None on a miss or any failure
        """
        try:
            raw = await self.redis.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.warning("cache_get_failed", cache_key=key, error=str(e))
            return None

    async def put(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store a plain JSON value.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl_seconds: Expiry in seconds, no expiry when None
        """
        try:
            payload = json.dumps(value)
            if ttl_seconds:
                await self.redis.setex(key, ttl_seconds, payload)
            else:
                await self.redis.set(key, payload)
            logger.debug("cache_set", cache_key=key, ttl=ttl_seconds)
        except Exception as e:
            logger.warning("cache_set_failed", cache_key=key, error=str(e))

    # -------------------------------------------------------------------------
    # Staleness-tracked values
    # -------------------------------------------------------------------------

    async def get_with_metadata(self, key: str) -> CacheResult:
        """Read an envelope written by ``put_with_metadata``.

        Missing, corrupt and expired (age >= 2 x TTL) entries all come back
        as ``CacheResult(exists=False)``.
        """
        try:
            raw = await self.redis.get(key)
            if raw is None:
                return CacheResult()
            entry = CacheEntry.from_dict(json.loads(raw))
        except Exception as e:
            logger.warning("cache_get_failed", cache_key=key, error=str(e))
            return CacheResult()

        freshness = entry.freshness(self._now_ms())
        if freshness is Freshness.EXPIRED:
            logger.debug("cache_entry_expired", cache_key=key)
            return CacheResult()

        return CacheResult(
            data=entry.data,
            fresh=freshness is Freshness.FRESH,
            stale=freshness is Freshness.STALE,
            exists=True,
            version=entry.version,
        )

    async def put_with_metadata(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        version: str | None = None,
    ) -> None:
        """Store ``value`` in a CacheEntry envelope.

        The Redis key expires after 2 x ``ttl_seconds`` so the entry stays
        readable (as stale) for one extra TTL.
        """
        entry = CacheEntry(
            data=value,
            timestamp=self._now_ms(),
            ttl=ttl_seconds * 1000,
            version=version,
        )
        try:
            await self.redis.setex(key, ttl_seconds * 2, json.dumps(entry.to_dict()))
            logger.debug("cache_set_with_metadata", cache_key=key, ttl=ttl_seconds)
        except Exception as e:
            logger.warning("cache_set_failed", cache_key=key, error=str(e))

    async def delete(self, key: str) -> None:
        """Delete a key."""
        try:
            await self.redis.delete(key)
            logger.debug("cache_invalidated", cache_key=key)
        except Exception as e:
            logger.warning("cache_invalidate_failed", cache_key=key, error=str(e))

    async def ping(self) -> bool:
        """Check Redis connectivity for readiness probes."""
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.error("cache_ping_failed", error=str(e))
            return False

    # -------------------------------------------------------------------------
    # Cache Key Generators
    # -------------------------------------------------------------------------

    @staticmethod
    def bgg_search_key(normalized_name: str) -> str:
        """Cache key for a BoardGameGeek name search (e.g. "bgg:search:catan")."""
        return f"bgg:search:{normalized_name}"

    @staticmethod
    def bgg_game_key(bgg_id: int) -> str:
        """Cache key for BoardGameGeek game details (e.g. "bgg:game:13")."""
        return f"bgg:game:{bgg_id}"


class NullCacheService:
    """No-op cache used when caching is disabled."""

    async def get(self, key: str) -> Any | None:
        return None

    async def put(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        return None

    async def get_with_metadata(self, key: str) -> CacheResult:
        return CacheResult()

    async def put_with_metadata(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        version: str | None = None,
    ) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None

    async def ping(self) -> bool:
        return True


# Global Redis client (set during app startup)
_redis_client: Redis | None = None


def set_redis_client(redis: Redis | None) -> None:
    """Set the global Redis client during app startup.

    Passing None selects the no-op cache.
    """
    global _redis_client
    _redis_client = redis


def get_cache_service() -> CacheService | NullCacheService:
    """FastAPI dependency for the cache."""
    if _redis_client is None:
        return NullCacheService()
    return CacheService(_redis_client)
