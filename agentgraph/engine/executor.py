"""
Executor - drives step-by-step traversal of a compiled graph.

Single-threaded and step-synchronous within a run: each node sees the merged
output of the previous one. Separate runs share no mutable state, so any
number of them may be awaited concurrently.

Loop:
    seed defaults (or a resumed snapshot) → merge the caller's partial state
    → current = entry target → until END:
        step budget exhausted?  → error channel = step-limit fault, return
        invoke node (exceptions become {error, current_step: "error"})
        check writes → merge via reducers → resolve next edge → step += 1
"""

import asyncio
import copy
import inspect
import logging
import time
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional
from pydantic import BaseModel, ConfigDict

from agentgraph.config.settings import settings
from agentgraph.engine.exceptions import (
    CANCELLED_FAULT, STEP_LIMIT_FAULT, StructuralFault, UndeclaredWriteError,
)
from agentgraph.engine.nodes import END, START, NodeSpec
from agentgraph.engine.state import StateSchema

logger = logging.getLogger(__name__)

ERROR_CHANNEL = "error"
STEP_CHANNEL = "current_step"
ERROR_MARKER = "error"


class StepEvent(BaseModel):
    """Emitted to the step listener after every node's output is merged."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_id: str = ""
    step: int
    node: str
    next_node: str
    state: Dict[str, Any]
    latency_ms: float = 0.0
    node_failed: bool = False


class RunOptions(BaseModel):
    """Per-run options."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_steps: Optional[int] = None
    run_id: str = ""
    snapshot: Optional[Dict[str, Any]] = None  # full prior state to resume from
    resume_from: Optional[str] = None  # node to start at instead of the entry target
    on_step: Optional[Callable[[StepEvent], Any]] = None
    cancel_event: Optional[asyncio.Event] = None


class CompiledGraph:
    """An immutable, validated graph ready to run."""

    def __init__(
        self,
        name: str,
        schema: StateSchema,
        nodes: Dict[str, NodeSpec],
        routes: Dict[str, Any],
    ):
        self.name = name
        self.schema = schema
        self._nodes = dict(nodes)
        self._routes = dict(routes)
        self._has_error_channel = ERROR_CHANNEL in schema
        self._has_step_channel = STEP_CHANNEL in schema

    @property
    def entry_node(self) -> str:
        return self._routes[START].target

    @property
    def node_names(self):
        return list(self._nodes)

    def next_node(self, current: str, state: Mapping[str, Any], step: int = 0) -> str:
        """Resolve the node that follows `current` given the merged state."""
        edge = self._routes.get(current)
        if edge is None:
            raise StructuralFault(f"Node '{current}' has no outgoing edge", node=current, step=step)
        return edge.resolve(state, step=step)

    # ── Run ───────────────────────────────────────────────────────────

    async def run(
        self,
        initial_state: Optional[Mapping[str, Any]] = None,
        options: Optional[RunOptions] = None,
    ) -> Dict[str, Any]:
        """
        Execute the graph and return the final state.

        Node exceptions never escape; they are merged as error-channel updates.
        Structural faults (unmapped route, undeclared writes) raise StructuralFault.
        """
        opts = options or RunOptions()
        max_steps = opts.max_steps if opts.max_steps is not None else settings.agent_max_steps
        step_log = logger.info if settings.agent_verbose else logger.debug

        if opts.snapshot is not None:
            state = self.schema.complete(copy.deepcopy(opts.snapshot))
        else:
            state = self.schema.initial_state()
        state = self.schema.merge(state, initial_state)

        current = opts.resume_from or self.entry_node
        if current != END and current not in self._nodes:
            raise StructuralFault(f"Cannot start at unknown node '{current}'", node=current)

        steps = 0
        start = time.time()
        while True:
            if current == END:
                logger.info(
                    f"[EXECUTOR] '{self.name}' run {opts.run_id or '-'} completed in {steps} steps "
                    f"({round((time.time() - start) * 1000, 1)}ms)"
                )
                return state

            if steps >= max_steps:
                logger.warning(
                    f"[EXECUTOR] '{self.name}' run {opts.run_id or '-'} hit step limit {max_steps} at '{current}'"
                )
                return self._halt(state, f"{STEP_LIMIT_FAULT}: exceeded {max_steps} steps before reaching the terminal node (next node '{current}')")

            if opts.cancel_event is not None and opts.cancel_event.is_set():
                logger.warning(f"[EXECUTOR] '{self.name}' run {opts.run_id or '-'} cancelled before '{current}'")
                return self._halt(state, f"{CANCELLED_FAULT}: cancelled before node '{current}'")

            node = self._nodes[current]
            node_start = time.time()
            partial, failed = await self._invoke(node, state)
            if not failed:
                self._check_writes(node, partial, steps)
            state = self.schema.merge(state, partial)

            next_node = self.next_node(current, state, step=steps)
            latency_ms = round((time.time() - node_start) * 1000, 1)
            step_log(f"[EXECUTOR] step {steps}: {current} -> {next_node} ({latency_ms}ms)")

            steps += 1
            if opts.on_step is not None:
                await self._notify(opts.on_step, StepEvent(
                    run_id=opts.run_id, step=steps, node=current, next_node=next_node,
                    state=copy.deepcopy(state), latency_ms=latency_ms, node_failed=failed,
                ))
            current = next_node

    def run_sync(
        self,
        initial_state: Optional[Mapping[str, Any]] = None,
        options: Optional[RunOptions] = None,
    ) -> Dict[str, Any]:
        """Synchronous wrapper around run()."""
        from agentgraph.db.sync_bridge import run_async
        return run_async(self.run(initial_state, options))

    # ── Internals ─────────────────────────────────────────────────────

    async def _invoke(self, node: NodeSpec, state: Dict[str, Any]):
        view = MappingProxyType(copy.deepcopy(state))
        try:
            result = await node.invoke_with_retry(view)
            return dict(result or {}), False
        except Exception as e:
            logger.error(f"[EXECUTOR] Node '{node.name}' raised {type(e).__name__}: {e}")
            partial: Dict[str, Any] = {}
            if self._has_error_channel:
                partial[ERROR_CHANNEL] = str(e) or type(e).__name__
            if self._has_step_channel:
                partial[STEP_CHANNEL] = ERROR_MARKER
            return partial, True

    def _check_writes(self, node: NodeSpec, partial: Mapping[str, Any], step: int) -> None:
        extra = [k for k in partial if k not in node.writes]
        if extra:
            raise UndeclaredWriteError(node.name, extra, step=step)

    def _halt(self, state: Dict[str, Any], fault: str) -> Dict[str, Any]:
        if not self._has_error_channel:
            raise StructuralFault(fault)
        return self.schema.merge(state, {ERROR_CHANNEL: fault})

    @staticmethod
    async def _notify(listener: Callable[[StepEvent], Any], event: StepEvent) -> None:
        try:
            result = listener(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"[EXECUTOR] Step listener failed at step {event.step}: {e}")
