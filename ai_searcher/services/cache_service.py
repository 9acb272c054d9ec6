# ai_searcher/services/cache_service.py
import hashlib
import json
import logging
from typing import Optional, Any, Dict
from datetime import datetime, timedelta
import redis.asyncio as redis

from ai_searcher.config.settings import settings

logger = logging.getLogger(__name__)

def build_cache_key(*parts: Any) -> str:
    """Stable key for arbitrary parts; hash() is salted per process"""
    raw = json.dumps(parts, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]

class CacheService:
    """Redis cache with an in-process memory fallback"""

    def __init__(self, redis_url: Optional[str] = None, max_memory_entries: Optional[int] = None):
        self.redis_url = settings.REDIS_URL if redis_url is None else redis_url
        self.redis_client: Optional[redis.Redis] = None
        self.memory_cache: Dict[str, Dict[str, Any]] = {}
        self.max_memory_cache_size = max_memory_entries or settings.MEMORY_CACHE_SIZE
        self.redis_enabled = bool(self.redis_url)

    async def _get_redis_client(self) -> Optional[redis.Redis]:
        if not self.redis_enabled:
            return None

        if self.redis_client is None:
            if not self.redis_url.startswith(("redis://", "rediss://")):
                logger.warning("Invalid Redis URL, using memory cache only")
                self.redis_enabled = False
                return None
            try:
                self.redis_client = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_timeout=5,
                    socket_connect_timeout=5
                )
                await self.redis_client.ping()
                logger.info("Redis connection established")
            except Exception as e:
                logger.warning(f"Redis connection failed: {e}. Using memory cache only.")
                self.redis_client = None
                self.redis_enabled = False
                return None

        return self.redis_client

    def _build_key(self, key: str, namespace: Optional[str]) -> str:
        return f"ai_searcher:{namespace}:{key}" if namespace else f"ai_searcher:{key}"

    async def get(self, key: str, namespace: Optional[str] = None) -> Optional[Any]:
        full_key = self._build_key(key, namespace)

        redis_client = await self._get_redis_client()
        if redis_client:
            try:
                value = await redis_client.get(full_key)
                if value:
                    return json.loads(value)
            except Exception as e:
                logger.warning(f"Redis get error: {e}")

        entry = self.memory_cache.get(full_key)
        if entry:
            if datetime.now() < entry["expires"]:
                return entry["value"]
            del self.memory_cache[full_key]

        return None

    async def set(self, key: str, value: Any, ttl: int = 3600, namespace: Optional[str] = None) -> bool:
        full_key = self._build_key(key, namespace)
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Cache set error, value not serialisable: {e}")
            return False

        redis_client = await self._get_redis_client()
        if redis_client:
            try:
                await redis_client.setex(full_key, ttl, payload)
            except Exception as e:
                logger.warning(f"Redis set error: {e}")

        if full_key not in self.memory_cache and len(self.memory_cache) >= self.max_memory_cache_size:
            self.memory_cache.pop(next(iter(self.memory_cache)))

        # Store the decoded payload so memory hits match Redis hits
        self.memory_cache[full_key] = {
            "value": json.loads(payload),
            "expires": datetime.now() + timedelta(seconds=ttl)
        }
        return True

    async def delete(self, key: str, namespace: Optional[str] = None) -> bool:
        full_key = self._build_key(key, namespace)

        redis_client = await self._get_redis_client()
        if redis_client:
            try:
                await redis_client.delete(full_key)
            except Exception as e:
                logger.warning(f"Redis delete error: {e}")

        self.memory_cache.pop(full_key, None)
        return True

    async def clear_namespace(self, namespace: str) -> int:
        prefix = self._build_key("", namespace)

        redis_client = await self._get_redis_client()
        if redis_client:
            try:
                keys = [key async for key in redis_client.scan_iter(match=f"{prefix}*")]
                if keys:
                    await redis_client.delete(*keys)
            except Exception as e:
                logger.warning(f"Redis clear namespace error: {e}")

        stale = [k for k in self.memory_cache if k.startswith(prefix)]
        for k in stale:
            del self.memory_cache[k]
        return len(stale)

    async def health_check(self) -> str:
        try:
            await self.set("health_check", "ok", 5)
            value = await self.get("health_check")
            await self.delete("health_check")
            if value != "ok":
                return "unhealthy"
            return "healthy" if self.redis_enabled else "degraded"
        except Exception as e:
            logger.error(f"Cache health check failed: {e}")
            return "unhealthy"

    async def close(self):
        if self.redis_client:
            try:
                await self.redis_client.aclose()
            except Exception as e:
                logger.warning(f"Error closing Redis client: {e}")
            self.redis_client = None
        self.memory_cache.clear()
