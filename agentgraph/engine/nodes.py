"""
Node Registry - named, state-transforming units of work.

A node is `fn(state) -> partial_state` (sync or async). It receives a
read-only snapshot and returns only the channels it declared in `writes`.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional
from pydantic import BaseModel, ConfigDict, Field

from agentgraph.engine.exceptions import GraphConfigError, UnknownChannelError
from agentgraph.engine.state import StateSchema

logger = logging.getLogger(__name__)

START = "__start__"
END = "__end__"
SENTINELS = (START, END)

NodeFn = Callable[[Mapping[str, Any]], Any]


class RetryPolicy(BaseModel):
    """Retry configuration for a node. The default never retries."""
    max_retries: int = 0
    backoff: Literal["fixed", "exp", "linear"] = "exp"
    initial_delay_seconds: float = 0.5
    max_delay_seconds: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        if self.backoff == "fixed":
            delay = self.initial_delay_seconds
        elif self.backoff == "linear":
            delay = self.initial_delay_seconds * attempt
        else:
            delay = self.initial_delay_seconds * (2 ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


class NodeSpec(BaseModel):
    """A registered node."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    fn: NodeFn
    writes: List[str] = Field(default_factory=list)
    description: str = ""
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    async def invoke(self, state: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        """Call the node once, awaiting it when it is a coroutine function."""
        result = self.fn(state)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def invoke_with_retry(self, state: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        attempt = 0
        while True:
            try:
                return await self.invoke(state)
            except Exception as e:
                if attempt >= self.retry.max_retries:
                    raise
                attempt += 1
                delay = self.retry.delay_for(attempt)
                logger.warning(
                    f"[NODE] '{self.name}' failed ({e}); retry {attempt}/{self.retry.max_retries} in {delay}s"
                )
                await asyncio.sleep(delay)


class NodeRegistry:
    """
    Registry of named nodes validated against a state schema.
    Unknown `writes` channels are rejected at registration time.
    """

    def __init__(self, schema: StateSchema):
        self._schema = schema
        self._nodes: Dict[str, NodeSpec] = {}

    def register(
        self,
        name: str,
        fn: NodeFn,
        writes: Optional[List[str]] = None,
        description: str = "",
        retry: Optional[RetryPolicy] = None,
    ) -> NodeSpec:
        if not name:
            raise GraphConfigError("Node name is required")
        if name in SENTINELS:
            raise GraphConfigError(f"'{name}' is reserved for the entry/terminal markers")
        if name in self._nodes:
            raise GraphConfigError(f"Duplicate node name: '{name}'")
        if not callable(fn):
            raise GraphConfigError(f"Node '{name}' is not callable")

        writes = list(writes or [])
        unknown = self._schema.unknown_keys(writes)
        if unknown:
            raise UnknownChannelError(
                f"Node '{name}' declares writes to unknown channels: {unknown}"
            )

        spec = NodeSpec(
            name=name,
            fn=fn,
            writes=writes,
            description=description or (inspect.getdoc(fn) or "").split("\n")[0],
            retry=retry or RetryPolicy(),
        )
        self._nodes[name] = spec
        logger.debug(f"[NODE] Registered '{name}' writes={writes}")
        return spec

    def get(self, name: str) -> Optional[NodeSpec]:
        return self._nodes.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def names(self) -> List[str]:
        return list(self._nodes)

    def list_all(self) -> List[NodeSpec]:
        return list(self._nodes.values())
