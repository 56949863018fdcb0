"""The assistant workflow: channels, nodes, graph wiring and hosting service"""
from .state import build_schema
from .nodes import (
    APOLOGY_RESPONSE,
    ASSISTANCE_RESPONSE,
    error_node,
    make_fetch_node,
    make_process_node,
    provide_assistance_node,
    route_query,
    router_node,
)
from .graph import build_assistant_graph, compile_assistant_graph
from .service import AssistantReply, AssistantService

__all__ = [
    "build_schema",
    "APOLOGY_RESPONSE",
    "ASSISTANCE_RESPONSE",
    "error_node",
    "make_fetch_node",
    "make_process_node",
    "provide_assistance_node",
    "route_query",
    "router_node",
    "build_assistant_graph",
    "compile_assistant_graph",
    "AssistantReply",
    "AssistantService",
]
