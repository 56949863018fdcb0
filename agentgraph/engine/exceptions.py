"""Exception hierarchy for the graph engine."""

from typing import List, Optional


# Prefixes written to the error channel when the executor halts a run itself.
STEP_LIMIT_FAULT = "step_limit_exceeded"
CANCELLED_FAULT = "run_cancelled"


class GraphError(Exception):
    """Base exception for graph engine errors."""

    pass


class GraphConfigError(GraphError):
    """Raised when a schema, node or graph definition is invalid at build time."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or [message]
        super().__init__(message)


class UnknownChannelError(GraphConfigError):
    """Raised when a key does not name a declared state channel."""

    pass


class StructuralFault(GraphError):
    """Unrecoverable engine-level fault that halts a run.

    Distinct from node-reported errors, which travel through the error channel.
    """

    def __init__(self, message: str, node: Optional[str] = None, step: int = 0):
        self.node = node
        self.step = step
        super().__init__(message)


class UnmappedRouteError(StructuralFault):
    """Raised when a conditional-edge resolver returns a value with no destination."""

    def __init__(self, node: str, value: object, step: int = 0):
        self.value = value
        super().__init__(
            f"Conditional edge from '{node}' resolved to {value!r}, which has no mapped destination",
            node=node,
            step=step,
        )


class UndeclaredWriteError(StructuralFault):
    """Raised when a node returns channels it did not declare in `writes`."""

    def __init__(self, node: str, keys: List[str], step: int = 0):
        self.keys = keys
        super().__init__(
            f"Node '{node}' returned undeclared channels: {sorted(keys)}",
            node=node,
            step=step,
        )


class RouteResolutionError(StructuralFault):
    """Raised when a conditional-edge resolver itself raises."""

    def __init__(self, node: str, cause: Exception, step: int = 0):
        self.cause = cause
        super().__init__(
            f"Conditional edge from '{node}' failed to resolve: {type(cause).__name__}: {cause}",
            node=node,
            step=step,
        )
