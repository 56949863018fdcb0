"""
Shared-state layer. Redis-backed hashes with graceful in-memory fallback.
"""
from agentgraph.cache.redis_state import RedisStateManager

__all__ = ["RedisStateManager"]
