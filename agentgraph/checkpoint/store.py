"""
Checkpoint Adapter - save/load serialized workflow state for resumable instances.

Invoked by the hosting layer before and after runs (optionally after every
step); the executor never depends on it. Instances are never deleted
implicitly: retention is a storage-policy concern, served by explicit delete().

Backends:
    InMemoryCheckpointStore  - per-process dict (dev/tests)
    RedisCheckpointStore     - RedisStateManager hash, in-memory fallback
    SqlCheckpointStore       - `agent_states` table via async SQLAlchemy
"""

import copy
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from pydantic import BaseModel, Field

from agentgraph.cache.redis_state import RedisStateManager
from agentgraph.checkpoint.codec import decode_state, encode_state
from agentgraph.engine.nodes import END

logger = logging.getLogger(__name__)


class CheckpointError(Exception):
    """Raised when a checkpoint backend fails to save or load."""

    pass


class WorkflowInstance(BaseModel):
    """Persisted form of a workflow instance."""
    instance_id: str
    state: Dict[str, Any] = Field(default_factory=dict)
    current_step: str = ""  # next node to execute, END once complete
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_complete(self) -> bool:
        return self.current_step == END


class CheckpointAck(BaseModel):
    instance_id: str
    updated_at: datetime
    durable: bool = True  # False when only an in-memory fallback holds the write
    backend: str = ""


class CheckpointStore:
    """Interface: save(instance_id, state, current_step) -> ack, load(instance_id) -> instance | None."""

    backend = "abstract"

    async def connect(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def save(self, instance_id: str, state: Mapping[str, Any], current_step: str) -> CheckpointAck:
        raise NotImplementedError()

    async def load(self, instance_id: str) -> Optional[WorkflowInstance]:
        raise NotImplementedError()

    async def delete(self, instance_id: str) -> bool:
        raise NotImplementedError()

    async def list_instances(self) -> List[str]:
        raise NotImplementedError()


class InMemoryCheckpointStore(CheckpointStore):
    backend = "memory"

    def __init__(self):
        self._instances: Dict[str, Dict[str, Any]] = {}

    async def save(self, instance_id: str, state: Mapping[str, Any], current_step: str) -> CheckpointAck:
        now = datetime.utcnow()
        existing = self._instances.get(instance_id)
        self._instances[instance_id] = {
            "instance_id": instance_id,
            "state": encode_state(state),
            "current_step": current_step,
            "created_at": existing["created_at"] if existing else now,
            "updated_at": now,
        }
        return CheckpointAck(instance_id=instance_id, updated_at=now, durable=False, backend=self.backend)

    async def load(self, instance_id: str) -> Optional[WorkflowInstance]:
        doc = self._instances.get(instance_id)
        if not doc:
            return None
        doc = copy.deepcopy(doc)
        doc["state"] = decode_state(doc["state"])
        return WorkflowInstance(**doc)

    async def delete(self, instance_id: str) -> bool:
        return self._instances.pop(instance_id, None) is not None

    async def list_instances(self) -> List[str]:
        return list(self._instances)


class RedisCheckpointStore(CheckpointStore):
    backend = "redis"
    NAMESPACE = "checkpoints"

    def __init__(self, state_manager: RedisStateManager):
        self._redis = state_manager

    async def connect(self) -> bool:
        return await self._redis.connect()

    async def close(self) -> None:
        await self._redis.disconnect()

    async def save(self, instance_id: str, state: Mapping[str, Any], current_step: str) -> CheckpointAck:
        now = datetime.utcnow()
        existing = await self._redis.hget(self.NAMESPACE, instance_id)
        doc = {
            "instance_id": instance_id,
            "state": encode_state(state),
            "current_step": current_step,
            "created_at": existing["created_at"] if existing else now.isoformat(),
            "updated_at": now.isoformat(),
        }
        durable = await self._redis.hset(self.NAMESPACE, instance_id, doc)
        if not durable:
            logger.warning(f"[CHECKPOINT] '{instance_id}' held in memory only (Redis unavailable)")
        return CheckpointAck(instance_id=instance_id, updated_at=now, durable=durable, backend=self.backend)

    async def load(self, instance_id: str) -> Optional[WorkflowInstance]:
        doc = await self._redis.hget(self.NAMESPACE, instance_id)
        if not doc:
            return None
        doc["state"] = decode_state(doc.get("state", {}))
        return WorkflowInstance(**doc)

    async def delete(self, instance_id: str) -> bool:
        return await self._redis.hdel(self.NAMESPACE, instance_id)

    async def list_instances(self) -> List[str]:
        return await self._redis.hkeys(self.NAMESPACE)


class SqlCheckpointStore(CheckpointStore):
    backend = "database"

    def __init__(self, session_factory=None):
        if session_factory is None:
            from agentgraph.db.sync_bridge import optional_session_factory
            session_factory = optional_session_factory()
        if session_factory is None:
            raise CheckpointError("Database session factory unavailable")
        self._sf = session_factory

    async def save(self, instance_id: str, state: Mapping[str, Any], current_step: str) -> CheckpointAck:
        from agentgraph.db.models import WorkflowInstanceModel

        now = datetime.utcnow()
        try:
            async with self._sf() as session:
                row = await session.get(WorkflowInstanceModel, instance_id)
                if row is None:
                    row = WorkflowInstanceModel(id=instance_id, created_at=now)
                    session.add(row)
                row.state = encode_state(state)
                row.current_step = current_step
                row.updated_at = now
                await session.commit()
        except Exception as e:
            logger.error(f"[CHECKPOINT] Save '{instance_id}' failed: {e}")
            raise CheckpointError(f"Failed to save checkpoint '{instance_id}': {e}") from e
        return CheckpointAck(instance_id=instance_id, updated_at=now, durable=True, backend=self.backend)

    async def load(self, instance_id: str) -> Optional[WorkflowInstance]:
        from agentgraph.db.models import WorkflowInstanceModel

        try:
            async with self._sf() as session:
                row = await session.get(WorkflowInstanceModel, instance_id)
                if row is None:
                    return None
                return WorkflowInstance(
                    instance_id=row.id,
                    state=decode_state(row.state or {}),
                    current_step=row.current_step or "",
                    created_at=row.created_at or datetime.utcnow(),
                    updated_at=row.updated_at or datetime.utcnow(),
                )
        except Exception as e:
            logger.error(f"[CHECKPOINT] Load '{instance_id}' failed: {e}")
            raise CheckpointError(f"Failed to load checkpoint '{instance_id}': {e}") from e

    async def delete(self, instance_id: str) -> bool:
        from agentgraph.db.models import WorkflowInstanceModel

        try:
            async with self._sf() as session:
                row = await session.get(WorkflowInstanceModel, instance_id)
                if row is None:
                    return False
                await session.delete(row)
                await session.commit()
                return True
        except Exception as e:
            logger.error(f"[CHECKPOINT] Delete '{instance_id}' failed: {e}")
            raise CheckpointError(f"Failed to delete checkpoint '{instance_id}': {e}") from e

    async def list_instances(self) -> List[str]:
        from sqlalchemy import select
        from agentgraph.db.models import WorkflowInstanceModel

        try:
            async with self._sf() as session:
                rows = (await session.execute(
                    select(WorkflowInstanceModel.id).order_by(WorkflowInstanceModel.updated_at.desc())
                )).scalars().all()
                return list(rows)
        except Exception as e:
            logger.error(f"[CHECKPOINT] Listing instances failed: {e}")
            raise CheckpointError(f"Failed to list checkpoints: {e}") from e


def create_checkpoint_store(backend: str, redis_url: str = "", session_factory=None) -> CheckpointStore:
    """Build the checkpoint store named by CHECKPOINT_BACKEND. Redis stores still need connect()."""
    if backend == "redis":
        return RedisCheckpointStore(RedisStateManager(redis_url=redis_url))
    if backend == "database":
        return SqlCheckpointStore(session_factory)
    return InMemoryCheckpointStore()
