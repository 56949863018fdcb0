"""
Conversation History - per-user record of query/response exchanges.
PostgreSQL-backed (conversations table) with in-memory fallback.
"""

import uuid
import logging
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ConversationEntry(BaseModel):
    entry_id: str = Field(default_factory=lambda: f"conv-{uuid.uuid4().hex[:12]}")
    user_id: str
    query: str = ""
    response: str = ""
    context: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


def _entry_from_row(row) -> ConversationEntry:
    return ConversationEntry(
        entry_id=row.id, user_id=row.user_id,
        query=row.query or "", response=row.response or "",
        context=row.context if isinstance(row.context, dict) else {},
        timestamp=row.timestamp or datetime.utcnow(),
    )


class ConversationStore:
    """
    Usage:
        store = ConversationStore(session_factory)   # or ConversationStore() for memory only
        await store.append("u1", "hi", "hello!", {"user_data": {...}})
        recent = await store.get_history("u1", limit=5)   # newest first
    """

    def __init__(self, session_factory=None):
        self._sf = session_factory
        self._entries: Dict[str, List[ConversationEntry]] = {}

    @property
    def db_backed(self) -> bool:
        return self._sf is not None

    async def append(
        self, user_id: str, query: str, response: str, context: Optional[Dict[str, Any]] = None
    ) -> ConversationEntry:
        entry = ConversationEntry(user_id=user_id, query=query, response=response, context=context or {})

        if self._sf is None:
            self._entries.setdefault(user_id, []).append(entry)
            logger.debug(f"[HISTORY] Stored {entry.entry_id} for {user_id} (memory)")
            return entry

        from agentgraph.db.models import ConversationModel
        async with self._sf() as session:
            session.add(ConversationModel(
                id=entry.entry_id, user_id=user_id, query=query, response=response,
                context=entry.context, timestamp=entry.timestamp,
            ))
            await session.commit()
        logger.debug(f"[HISTORY] Stored {entry.entry_id} for {user_id}")
        return entry

    async def get_history(self, user_id: str, limit: int = 10) -> List[ConversationEntry]:
        if self._sf is None:
            entries = self._entries.get(user_id, [])
            return list(reversed(entries))[:limit]

        from sqlalchemy import select
        from agentgraph.db.models import ConversationModel
        async with self._sf() as session:
            rows = (await session.execute(
                select(ConversationModel)
                .where(ConversationModel.user_id == user_id)
                .order_by(ConversationModel.timestamp.desc())
                .limit(limit)
            )).scalars().all()
            return [_entry_from_row(r) for r in rows]
