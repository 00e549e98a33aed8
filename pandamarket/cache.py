import json
import logging

import redis.asyncio as redis

from pandamarket.config import settings

logger = logging.getLogger(__name__)

ARTICLES = "articles"
PRODUCTS = "products"

# Session.info key holding namespaces to drop after the next commit
_PENDING = "cache_invalidate"


def list_key(namespace: str, *parts) -> str:
    """
    Build a list-cache key such as ``products:list:1:10:recent:phone``.

    Every query dimension that changes the result must be passed in
    *parts*; ``None`` is encoded as an empty segment.
    """
    encoded = ":".join("" if p is None else str(p) for p in parts)
    return f"{namespace}:list:{encoded}"


class CacheManager:
    """
    Cache-aside store for public list pages, backed by Redis.

    Only anonymous, requester-independent payloads are cached (list pages
    carry counts but no per-user flags).  Every method tolerates Redis
    being down: reads miss, writes and invalidations are skipped.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._misses: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, list cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Reads / writes
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | None:
        """Return the cached page for *key*, or None on a miss or error."""
        if not self._redis:
            self._misses += 1
            return None
        try:
            raw = await self._redis.get(key)
        except Exception as exc:
            logger.debug("Cache GET failed for %r: %s", key, exc)
            self._misses += 1
            return None
        if raw is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(raw)

    async def set(self, key: str, value: dict, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl or settings.CACHE_TTL_LIST)
        except Exception as exc:
            logger.debug("Cache SET failed for %r: %s", key, exc)

    async def invalidate(self, namespace: str) -> None:
        """
        Drop every list page of *namespace* using SCAN (avoids blocking KEYS).

        Called after any write to the aggregate, reactions included, since
        list items embed reaction counts.
        """
        if not self._redis:
            return
        pattern = f"{namespace}:list:*"
        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache invalidation failed for %r: %s", pattern, exc)

    def invalidate_after_commit(self, db, namespace: str) -> None:
        """Queue *namespace* for invalidation once *db* commits."""
        db.info.setdefault(_PENDING, set()).add(namespace)

    async def flush_pending(self, db) -> None:
        """Invalidate every namespace queued on *db*.  Call right after a commit."""
        for namespace in sorted(db.info.pop(_PENDING, ())):
            await self.invalidate(namespace)

    @staticmethod
    def discard_pending(db) -> None:
        """Forget queued invalidations; the transaction was rolled back."""
        db.info.pop(_PENDING, None)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Hit/miss counters for the metrics endpoint."""
        total = self._hits + self._misses
        return {
            "connected": self._redis is not None,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


# Module-level singleton shared across all request handlers.
cache = CacheManager()
