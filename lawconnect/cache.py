"""
Redis-backed browser storage.

Each browser profile (identified by the device cookie) gets its own key
namespace, standing in for the browser's durable local storage across the
redirect to Google and back.
"""
import json
import logging
import os
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None

KEY_PREFIX = "browser"


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Supports both standard Redis and Upstash managed Redis
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection for browser storage...")

        redis_url = os.getenv("REDIS_URL")

        if redis_url:
            # Mask password in URL for logging
            if "@" in redis_url:
                url_parts = redis_url.split("@")
                protocol = url_parts[0].split(":")[0]
                masked_url = f"{protocol}:****@{url_parts[1]}"
            else:
                masked_url = "****"
            logger.info(f"📡 Using Redis URL connection: {masked_url}")

            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port = int(os.getenv("REDIS_PORT", "6379"))
            redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
            logger.info(f"📡 Using Redis at {redis_host}:{redis_port} (SSL: {redis_ssl})")

            client = redis.Redis(
                host=redis_host,
                port=redis_port,
                password=os.getenv("REDIS_PASSWORD", None),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=redis_ssl,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
            )

        try:
            client.ping()
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis: {str(e)}")
            raise
        redis_client = client
        logger.info("Redis connected successfully")

    return redis_client


class Cache:
    """Redis key/value wrapper scoped to one browser profile"""

    def __init__(self, namespace: Optional[str] = None, client: Optional[redis.Redis] = None):
        self.namespace = namespace
        self.redis_client = client

    def _get_client(self):
        """Lazy load Redis client"""
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Redis cache unavailable: {e}")
                return None
        return self.redis_client

    def _key(self, key: str) -> str:
        if self.namespace:
            return f"{KEY_PREFIX}:{self.namespace}:{key}"
        return f"{KEY_PREFIX}:{key}"

    def get_raw(self, key: str) -> Optional[str]:
        """Get the stored string without decoding it"""
        client = self._get_client()
        if not client:
            return None

        try:
            return client.get(self._key(key))
        except Exception as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def get(self, key: str) -> Optional[Any]:
        """Get JSON value from cache; undecodable values read as missing"""
        value = self.get_raw(key)
        if value is None:
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            logger.warning(f"⚠️ Discarding undecodable cache value for {key}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.setex(self._key(key), ttl, json.dumps(value))
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete value from cache"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.delete(self._key(key))
            logger.debug(f"✅ Cache DELETE: {key}")
            return True
        except Exception as e:
            logger.error(f"❌ Cache delete error for {key}: {e}")
            return False


def browser_storage(device_id: str) -> Cache:
    """Storage for one browser profile"""
    return Cache(namespace=device_id)


def get_cache_stats() -> dict:
    """Get cache statistics"""
    client = Cache()._get_client()
    if not client:
        return {"available": False}

    try:
        info = client.info()
        return {
            "available": True,
            "used_memory": info.get("used_memory_human"),
            "connected_clients": info.get("connected_clients"),
        }
    except Exception as e:
        logger.error(f"❌ Failed to get cache stats: {e}")
        return {"available": False, "error": str(e)}
