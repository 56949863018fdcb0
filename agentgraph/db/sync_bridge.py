"""
Async-to-sync bridge for synchronous callers of the executor and the
DB-backed stores.
"""
import asyncio
import concurrent.futures
from typing import Any, Coroutine, Optional, TypeVar

from sqlalchemy.ext.asyncio import async_sessionmaker

T = TypeVar("T")

_BRIDGE_POOL = concurrent.futures.ThreadPoolExecutor(
    max_workers=4, thread_name_prefix="agentgraph-bridge"
)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a coroutine to completion from synchronous code.
    Outside an event loop → asyncio.run(); inside one → a fresh loop on a bridge thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    return _BRIDGE_POOL.submit(asyncio.run, coro).result()


def optional_session_factory() -> Optional[async_sessionmaker]:
    """The configured session factory, or None when the DB layer cannot be initialised."""
    try:
        from agentgraph.db.engine import get_session_factory
        return get_session_factory()
    except Exception:
        return None
