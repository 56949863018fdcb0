"""
Assistant Service - hosts the compiled assistant graph.

Builds the graph once (validating the configured LLM provider), seeds each
request with the query, runs it, and checkpoints the resulting instance.
Checkpoint failures are reported on the reply; the computed answer stays valid.
"""

import uuid
import logging
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from langchain_core.messages import HumanMessage

from agentgraph.assistant.graph import compile_assistant_graph
from agentgraph.assistant.state import STEP_START
from agentgraph.checkpoint.store import (
    CheckpointError, CheckpointStore, WorkflowInstance, create_checkpoint_store,
)
from agentgraph.config.settings import Settings, settings as default_settings
from agentgraph.engine.exceptions import CANCELLED_FAULT, STEP_LIMIT_FAULT
from agentgraph.engine.executor import RunOptions, StepEvent
from agentgraph.engine.side_channel import BestEffortChannel
from agentgraph.history.conversation_store import ConversationEntry, ConversationStore
from agentgraph.llm_registry.provider_registry import ProviderRegistry
from agentgraph.lookups.context_lookup import ProductDataLookup, UserDataLookup

logger = logging.getLogger(__name__)


class AssistantReply(BaseModel):
    instance_id: str
    response: str = ""
    current_step: str = ""
    error: bool = False
    context: Dict[str, Any] = Field(default_factory=dict)
    thoughts: List[str] = Field(default_factory=list)
    checkpoint_saved: bool = False
    checkpoint_durable: bool = False
    checkpoint_error: Optional[str] = None


class AssistantService:
    """
    Usage:
        service = AssistantService()
        await service.start()
        reply = await service.ask("What is my account balance?", user_id="u-1")
        await service.aclose()
    """

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        client=None,
        registry: Optional[ProviderRegistry] = None,
        user_lookup=None,
        product_lookup=None,
        history: Optional[ConversationStore] = None,
        checkpoints: Optional[CheckpointStore] = None,
        session_factory=None,
    ):
        self.settings = app_settings or default_settings
        if client is None:
            registry = registry or ProviderRegistry.with_builtins(self.settings)
            registry.validate(self.settings.llm_provider)
            client = registry.create_client(self.settings.llm_provider)

        self.client = client
        self.side_channel = BestEffortChannel()
        self._checkpoints_connected: Optional[bool] = None
        self._uses_default_db = session_factory is None
        self.history_store = history or ConversationStore(session_factory)
        self.checkpoints = checkpoints or create_checkpoint_store(
            self.settings.checkpoint_backend, self.settings.redis_url, session_factory,
        )
        self.graph = compile_assistant_graph(
            client,
            user_lookup or UserDataLookup(session_factory),
            product_lookup or ProductDataLookup(session_factory),
            history=self.history_store,
            side_channel=self.side_channel,
            app_settings=self.settings,
        )

    async def start(self) -> None:
        connected = await self.checkpoints.connect()
        self._checkpoints_connected = connected
        logger.info(f"[ASSISTANT] Started (checkpoints={self.checkpoints.backend}, connected={connected})")

    async def aclose(self) -> None:
        await self.side_channel.flush()
        await self.checkpoints.close()
        if self._uses_default_db:
            from agentgraph.db.engine import dispose_engine
            await dispose_engine()

    # ── Requests ──────────────────────────────────────────────────────

    async def ask(self, query: str, user_id: Optional[str] = None, instance_id: Optional[str] = None) -> AssistantReply:
        """
        Answer `query`. With an existing `instance_id` the stored state (message
        log, context) is carried into the new run, which starts at the entry.
        This holds for an interrupted instance too: the new query supersedes
        the unfinished one. Use resume() to finish it instead.
        """
        instance_id = instance_id or f"inst-{uuid.uuid4().hex[:12]}"
        prior = await self._load(instance_id)

        seed: Dict[str, Any] = {
            "query": query,
            "messages": [HumanMessage(content=query)],
            "response": "",
            "error": None,
            "current_step": STEP_START,
        }
        if user_id:
            seed["user_id"] = user_id

        options = RunOptions(run_id=instance_id)
        if prior is not None:
            options.snapshot = prior.state
        return await self._run(instance_id, seed, options)

    async def resume(self, instance_id: str) -> AssistantReply:
        """Continue an interrupted instance from its stored graph position."""
        prior = await self._load(instance_id)
        if prior is None:
            raise CheckpointError(f"No checkpoint for instance '{instance_id}'")
        if prior.is_complete:
            return self._reply(instance_id, prior.state)
        # a halt fault from the interrupted run does not carry over
        seed = None
        fault = prior.state.get("error")
        if isinstance(fault, str) and fault.startswith((STEP_LIMIT_FAULT, CANCELLED_FAULT)):
            seed = {"error": None}
        options = RunOptions(run_id=instance_id, snapshot=prior.state, resume_from=prior.current_step)
        return await self._run(instance_id, seed, options)

    def ask_sync(self, query: str, user_id: Optional[str] = None, instance_id: Optional[str] = None) -> AssistantReply:
        from agentgraph.db.sync_bridge import run_async

        async def _ask() -> AssistantReply:
            reply = await self.ask(query, user_id=user_id, instance_id=instance_id)
            await self.side_channel.flush()
            return reply

        return run_async(_ask())

    async def history(self, user_id: str, limit: int = 10) -> List[ConversationEntry]:
        return await self.history_store.get_history(user_id, limit=limit)

    def health(self) -> Dict[str, Any]:
        """
        Service status for readiness checks. "degraded" when start() found the
        checkpoint backend unreachable (writes then land in a fallback).
        """
        status = "degraded" if self._checkpoints_connected is False else "healthy"
        return {
            "status": status,
            "provider": getattr(self.client, "provider", "") or self.settings.llm_provider,
            "model": getattr(self.client, "model_name", ""),
            "checkpoint_backend": self.checkpoints.backend,
            "checkpoint_connected": self._checkpoints_connected,
            "history_backend": "database" if self.history_store.db_backed else "memory",
            "side_channel": self.side_channel.stats(),
        }

    # ── Internals ─────────────────────────────────────────────────────

    async def _run(self, instance_id: str, seed: Optional[Dict[str, Any]], options: RunOptions) -> AssistantReply:
        if options.max_steps is None:
            options.max_steps = self.settings.agent_max_steps
        position = {"next": options.resume_from or self.graph.entry_node}

        async def on_step(event: StepEvent) -> None:
            position["next"] = event.next_node
            if self.settings.checkpoint_every_step:
                await self.checkpoints.save(instance_id, event.state, event.next_node)

        options.on_step = on_step
        state = await self.graph.run(seed, options)

        reply = self._reply(instance_id, state)
        try:
            ack = await self.checkpoints.save(instance_id, state, position["next"])
            reply.checkpoint_saved = True
            reply.checkpoint_durable = ack.durable
        except CheckpointError as e:
            logger.error(f"[ASSISTANT] Checkpoint save for '{instance_id}' failed: {e}")
            reply.checkpoint_error = str(e)
        return reply

    async def _load(self, instance_id: str) -> Optional[WorkflowInstance]:
        try:
            return await self.checkpoints.load(instance_id)
        except CheckpointError as e:
            logger.warning(f"[ASSISTANT] Starting '{instance_id}' fresh, checkpoint unreadable: {e}")
            return None

    @staticmethod
    def _reply(instance_id: str, state: Dict[str, Any]) -> AssistantReply:
        return AssistantReply(
            instance_id=instance_id,
            response=state.get("response") or "",
            current_step=state.get("current_step") or "",
            error=state.get("error") is not None,
            context=dict(state.get("context") or {}),
            thoughts=[str(t) for t in state.get("thoughts") or []],
        )
