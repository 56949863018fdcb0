"""
Best-effort side channel for non-fatal effects (history writes, telemetry).

submit() schedules the work as a background task and returns at once.
Failures are logged with their label and never reach the caller.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Set

logger = logging.getLogger(__name__)


class BestEffortChannel:
    """
    Usage:
        channel = BestEffortChannel()
        channel.submit(lambda: store.append(uid, q, r, ctx), "history.append")
        ...
        await channel.flush()   # tests / shutdown
    """

    def __init__(self):
        self._pending: Set[asyncio.Task] = set()
        self._submitted = 0
        self._failed = 0

    def submit(self, factory: Callable[[], Awaitable[Any]], label: str = "side-effect") -> bool:
        """Schedule `factory()` in the background. Returns False if it could not be scheduled."""
        self._submitted += 1
        try:
            loop = asyncio.get_running_loop()
            task = loop.create_task(self._guard(factory, label))
        except Exception as e:
            self._failed += 1
            logger.warning(f"[SIDE-CHANNEL] Could not schedule '{label}': {e}")
            return False
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _guard(self, factory: Callable[[], Awaitable[Any]], label: str) -> None:
        try:
            await factory()
        except Exception as e:
            self._failed += 1
            logger.error(f"[SIDE-CHANNEL] '{label}' failed: {e}")

    async def flush(self) -> None:
        """Wait for all outstanding side effects."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def stats(self) -> Dict[str, int]:
        return {"submitted": self._submitted, "failed": self._failed, "pending": len(self._pending)}
