"""
Graph Definition - nodes, static edges, conditional edges, entry/terminal.

Build-time validation turns configuration mistakes (unknown targets,
non-exhaustive path maps, dead-end nodes, resolvers reading channels their
source node never writes) into GraphConfigError before any run starts.

    graph = WorkflowGraph(schema)
    graph.add_node("router", router_node, writes=["current_step"])
    graph.set_entry_point("router")
    graph.add_conditional_edges("router", lambda s: s["current_step"],
                                {"process": "process"}, reads=["current_step"])
    compiled = graph.compile()
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Set
from pydantic import BaseModel, ConfigDict, Field

from agentgraph.engine.exceptions import GraphConfigError, RouteResolutionError, UnmappedRouteError
from agentgraph.engine.nodes import END, START, NodeFn, NodeRegistry, NodeSpec, RetryPolicy
from agentgraph.engine.state import StateSchema

logger = logging.getLogger(__name__)

Resolver = Callable[[Mapping[str, Any]], Any]


class StaticEdge(BaseModel):
    """Node `source` always proceeds to `target`."""
    source: str
    target: str

    def destinations(self) -> List[str]:
        return [self.target]

    def resolve(self, state: Mapping[str, Any], step: int = 0) -> str:
        return self.target


class ConditionalEdge(BaseModel):
    """Node `source` proceeds to path_map[resolver(merged_state)]."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    source: str
    resolver: Resolver
    path_map: Dict[Any, str] = Field(default_factory=dict)
    reads: List[str] = Field(default_factory=list)

    def destinations(self) -> List[str]:
        return list(self.path_map.values())

    def resolve(self, state: Mapping[str, Any], step: int = 0) -> str:
        try:
            value = self.resolver(state)
        except Exception as e:
            raise RouteResolutionError(self.source, e, step=step) from e
        try:
            return self.path_map[value]
        except (KeyError, TypeError):
            raise UnmappedRouteError(self.source, value, step=step) from None


class WorkflowGraph:
    """Mutable graph builder. Assemble once at startup, then compile()."""

    def __init__(self, schema: StateSchema, name: str = "workflow"):
        self.name = name
        self.schema = schema
        self.nodes = NodeRegistry(schema)
        self._edges: Dict[str, List[Any]] = {}

    # ── Assembly ──────────────────────────────────────────────────────

    def add_node(
        self,
        name: str,
        fn: NodeFn,
        writes: Optional[List[str]] = None,
        description: str = "",
        retry: Optional[RetryPolicy] = None,
    ) -> "WorkflowGraph":
        self.nodes.register(name, fn, writes=writes, description=description, retry=retry)
        return self

    def add_edge(self, source: str, target: str) -> "WorkflowGraph":
        if source == END:
            raise GraphConfigError("The terminal marker cannot have outgoing edges")
        if target == START:
            raise GraphConfigError("The entry marker cannot be an edge target")
        self._edges.setdefault(source, []).append(StaticEdge(source=source, target=target))
        return self

    def set_entry_point(self, name: str) -> "WorkflowGraph":
        return self.add_edge(START, name)

    def add_conditional_edges(
        self,
        source: str,
        resolver: Resolver,
        path_map: Dict[Any, str],
        reads: Optional[List[str]] = None,
    ) -> "WorkflowGraph":
        """
        Route `source` through `resolver`. `reads` names the channels the
        resolver inspects; validation checks `source` declares writes to them.
        """
        if source in (START, END):
            raise GraphConfigError("Conditional edges must start at a registered node")
        if not path_map:
            raise GraphConfigError(f"Conditional edge from '{source}' needs a non-empty path map")
        self._edges.setdefault(source, []).append(
            ConditionalEdge(
                source=source, resolver=resolver,
                path_map=dict(path_map), reads=list(reads or []),
            )
        )
        return self

    # ── Inspection ────────────────────────────────────────────────────

    def get_outgoing(self, source: str) -> List[Any]:
        return list(self._edges.get(source, []))

    def get_entry_node(self) -> Optional[str]:
        edges = self._edges.get(START, [])
        return edges[0].target if len(edges) == 1 else None

    def reachable_from_entry(self) -> Set[str]:
        seen: Set[str] = set()
        entry = self.get_entry_node()
        queue = [entry] if entry else []
        while queue:
            nid = queue.pop(0)
            if nid in seen or nid == END or nid not in self.nodes:
                continue
            seen.add(nid)
            for edge in self._edges.get(nid, []):
                queue.extend(edge.destinations())
        return seen

    def validate(self) -> List[str]:
        """Validate the graph for structural errors. Returns list of error messages."""
        errors: List[str] = []
        declared = set(self.nodes.names())

        if not declared:
            errors.append("Graph has no nodes")

        entry_edges = self._edges.get(START, [])
        if not entry_edges:
            errors.append("No entry point set (add an edge from START)")
        elif len(entry_edges) > 1:
            errors.append("START must have exactly one static edge")

        for source, edges in self._edges.items():
            if source != START and source not in declared:
                errors.append(f"Edge source '{source}' is not a registered node")
            if source != START and len(edges) > 1:
                errors.append(
                    f"Node '{source}' has {len(edges)} outgoing edge specifications; exactly one is allowed"
                )
            for edge in edges:
                for target in edge.destinations():
                    if target != END and target not in declared:
                        if isinstance(edge, ConditionalEdge):
                            errors.append(
                                f"Conditional edge from '{source}' maps to undeclared node '{target}'"
                            )
                        else:
                            errors.append(f"Edge {source} -> {target}: target not found")
                if isinstance(edge, ConditionalEdge):
                    errors.extend(self._validate_reads(edge))

        reachable = self.reachable_from_entry()
        for nid in sorted(reachable):
            if not self._edges.get(nid):
                errors.append(f"Node '{nid}' is reachable from the entry but has no outgoing edge")

        for nid in declared - reachable:
            logger.warning(f"[GRAPH] '{self.name}': node '{nid}' is unreachable from the entry")

        return errors

    def _validate_reads(self, edge: ConditionalEdge) -> List[str]:
        errors = []
        if not edge.reads:
            logger.warning(
                f"[GRAPH] '{self.name}': conditional edge from '{edge.source}' declares no reads; "
                f"its resolver inputs are not checked"
            )
        spec: Optional[NodeSpec] = self.nodes.get(edge.source)
        for channel in edge.reads:
            if channel not in self.schema:
                errors.append(f"Conditional edge from '{edge.source}' reads unknown channel '{channel}'")
            elif spec and channel not in spec.writes:
                errors.append(
                    f"Conditional edge from '{edge.source}' reads '{channel}', "
                    f"which '{edge.source}' does not write"
                )
        return errors

    def compile(self):
        """Validate and freeze the graph into an executable CompiledGraph."""
        from agentgraph.engine.executor import CompiledGraph

        errors = self.validate()
        if errors:
            raise GraphConfigError(
                f"Graph '{self.name}' failed validation with {len(errors)} error(s): " + "; ".join(errors),
                errors=errors,
            )
        routes = {source: edges[0] for source, edges in self._edges.items()}
        logger.info(
            f"[GRAPH] Compiled '{self.name}': {len(self.nodes.names())} nodes, entry={self.get_entry_node()}"
        )
        return CompiledGraph(
            name=self.name,
            schema=self.schema,
            nodes={spec.name: spec for spec in self.nodes.list_all()},
            routes=routes,
        )
