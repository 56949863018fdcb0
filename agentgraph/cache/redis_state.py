"""
Redis-backed namespaced hash storage for workflow checkpoints.
Values are JSON documents. When Redis is unavailable (never connected, or a
call fails) reads and writes go to an in-memory fallback, and writes report
that they were not durable.
"""

import copy
import json
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class RedisStateManager:
    """
    Usage:
        state = RedisStateManager(redis_url="redis://localhost:6379/0")
        await state.connect()
        durable = await state.hset("checkpoints", "inst-1", {...})
        doc = await state.hget("checkpoints", "inst-1")
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", prefix: str = "agentgraph"):
        self._redis_url = redis_url
        self._prefix = prefix
        self._redis = None
        self._connected = False
        self._fallback: Dict[str, Dict[str, Any]] = {}

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Attempt to connect to Redis. Returns True if successful."""
        try:
            import redis.asyncio as aioredis
            self._redis = aioredis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
            )
            await self._redis.ping()
            self._connected = True
            logger.info(f"[REDIS] Connected to {self._redis_url}")
            return True
        except Exception as e:
            logger.warning(f"[REDIS] Connection failed ({e}). Using in-memory fallback.")
            self._connected = False
            self._redis = None
            return False

    async def disconnect(self) -> None:
        if self._redis:
            try:
                await self._redis.aclose()
            except Exception as e:
                logger.warning(f"[REDIS] Close failed: {e}")
        self._redis = None
        self._connected = False

    def _ns(self, namespace: str) -> str:
        return f"{self._prefix}:{namespace}"

    async def hset(self, namespace: str, key: str, value: Any) -> bool:
        """Store `value`. Returns True when written to Redis, False when only the fallback holds it."""
        if self._connected and self._redis:
            try:
                await self._redis.hset(self._ns(namespace), key, json.dumps(value, default=str))
                return True
            except Exception as e:
                logger.warning(f"[REDIS] hset {namespace}/{key} failed: {e}")
        self._fallback.setdefault(namespace, {})[key] = copy.deepcopy(value)
        return False

    async def hget(self, namespace: str, key: str) -> Optional[Any]:
        if self._connected and self._redis:
            try:
                raw = await self._redis.hget(self._ns(namespace), key)
                return json.loads(raw) if raw else None
            except Exception as e:
                logger.warning(f"[REDIS] hget {namespace}/{key} failed: {e}")
        value = self._fallback.get(namespace, {}).get(key)
        return copy.deepcopy(value) if value is not None else None

    async def hdel(self, namespace: str, key: str) -> bool:
        """Delete `key`. Returns True if it existed."""
        existed = self._fallback.get(namespace, {}).pop(key, None) is not None
        if self._connected and self._redis:
            try:
                existed = bool(await self._redis.hdel(self._ns(namespace), key)) or existed
            except Exception as e:
                logger.warning(f"[REDIS] hdel {namespace}/{key} failed: {e}")
        return existed

    async def hkeys(self, namespace: str) -> List[str]:
        if self._connected and self._redis:
            try:
                return list(await self._redis.hkeys(self._ns(namespace)))
            except Exception as e:
                logger.warning(f"[REDIS] hkeys {namespace} failed: {e}")
        return list(self._fallback.get(namespace, {}).keys())
