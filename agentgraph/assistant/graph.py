"""
Assistant graph wiring.

    START -> router
    router ==current_step==> fetch_user_data | fetch_product_data | provide_assistance | process | error
    fetch_user_data, fetch_product_data, provide_assistance -> process
    process ==error set?==> error | END
    error -> END
"""

from typing import Any, Mapping, Optional

from agentgraph.assistant import nodes
from agentgraph.assistant.state import (
    STEP_ASSIST, STEP_COMPLETE, STEP_ERROR, STEP_FETCH_PRODUCT, STEP_FETCH_USER,
    STEP_PROCESS, build_schema,
)
from agentgraph.config.settings import Settings
from agentgraph.engine.executor import CompiledGraph
from agentgraph.engine.graph import WorkflowGraph
from agentgraph.engine.nodes import END
from agentgraph.engine.side_channel import BestEffortChannel

GRAPH_NAME = "assistant"


def route_after_router(state: Mapping[str, Any]) -> str:
    return state.get("current_step")


def route_after_process(state: Mapping[str, Any]) -> str:
    return STEP_ERROR if state.get("error") else STEP_COMPLETE


def build_assistant_graph(
    client,
    user_lookup,
    product_lookup,
    history=None,
    side_channel: Optional[BestEffortChannel] = None,
    app_settings: Optional[Settings] = None,
) -> WorkflowGraph:
    graph = WorkflowGraph(build_schema(app_settings), name=GRAPH_NAME)

    graph.add_node("router", nodes.router_node, writes=nodes.ROUTER_WRITES,
                   description="Keyword routing on the latest message")
    graph.add_node(STEP_FETCH_USER, nodes.make_fetch_node(user_lookup, "user"),
                   writes=nodes.FETCH_WRITES, description="User context lookup")
    graph.add_node(STEP_FETCH_PRODUCT, nodes.make_fetch_node(product_lookup, "product"),
                   writes=nodes.FETCH_WRITES, description="Product context lookup")
    graph.add_node(STEP_PROCESS, nodes.make_process_node(client, history, side_channel),
                   writes=nodes.PROCESS_WRITES, description="Model call over context and query")
    graph.add_node(STEP_ASSIST, nodes.provide_assistance_node,
                   writes=nodes.FIXED_RESPONSE_WRITES, description="Fixed clarification")
    graph.add_node(STEP_ERROR, nodes.error_node,
                   writes=nodes.FIXED_RESPONSE_WRITES, description="Fixed apology")

    graph.set_entry_point("router")
    graph.add_conditional_edges(
        "router",
        route_after_router,
        {
            STEP_FETCH_USER: STEP_FETCH_USER,
            STEP_FETCH_PRODUCT: STEP_FETCH_PRODUCT,
            STEP_ASSIST: STEP_ASSIST,
            STEP_PROCESS: STEP_PROCESS,
            STEP_ERROR: STEP_ERROR,
        },
        reads=["current_step"],
    )
    graph.add_edge(STEP_FETCH_USER, STEP_PROCESS)
    graph.add_edge(STEP_FETCH_PRODUCT, STEP_PROCESS)
    graph.add_edge(STEP_ASSIST, STEP_PROCESS)
    graph.add_conditional_edges(
        STEP_PROCESS,
        route_after_process,
        {STEP_ERROR: STEP_ERROR, STEP_COMPLETE: END},
        reads=["error"],
    )
    graph.add_edge(STEP_ERROR, END)
    return graph


def compile_assistant_graph(*args, **kwargs) -> CompiledGraph:
    return build_assistant_graph(*args, **kwargs).compile()
