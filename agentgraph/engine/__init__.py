"""Graph Engine - state schema, node registry, graph definition and executor"""
from .state import Channel, MergeStrategy, StateSchema
from .nodes import END, START, NodeRegistry, NodeSpec, RetryPolicy
from .graph import ConditionalEdge, StaticEdge, WorkflowGraph
from .executor import CompiledGraph, RunOptions, StepEvent
from .side_channel import BestEffortChannel
from .exceptions import (
    CANCELLED_FAULT,
    STEP_LIMIT_FAULT,
    GraphConfigError,
    GraphError,
    StructuralFault,
    UndeclaredWriteError,
    UnknownChannelError,
    RouteResolutionError,
    UnmappedRouteError,
)

__all__ = [
    "Channel",
    "MergeStrategy",
    "StateSchema",
    "START",
    "END",
    "NodeRegistry",
    "NodeSpec",
    "RetryPolicy",
    "StaticEdge",
    "ConditionalEdge",
    "WorkflowGraph",
    "CompiledGraph",
    "RunOptions",
    "StepEvent",
    "BestEffortChannel",
    "CANCELLED_FAULT",
    "STEP_LIMIT_FAULT",
    "GraphError",
    "GraphConfigError",
    "UnknownChannelError",
    "StructuralFault",
    "RouteResolutionError",
    "UnmappedRouteError",
    "UndeclaredWriteError",
]
