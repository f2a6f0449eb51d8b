"""
Error taxonomy for plugin graphs.

Three families:
- Structural: reported by the validator, blocks compilation
  (GraphValidationError wraps the issue list).
- Runtime-recoverable: raised inside a node, caught at the node boundary,
  optionally bound into a ``<var>_error`` variable. Execution may continue.
- Runtime-fatal: aborts the single invocation that raised it.
"""

from typing import Any


class BotflowError(Exception):
    """Base class for every error raised by botflow."""

    pass


class GraphValidationError(BotflowError):
    """Raised by the compiler when a graph has blocking validation issues."""

    def __init__(self, issues: list[Any]):
        self.issues = issues
        messages = "; ".join(str(issue) for issue in issues)
        super().__init__(f"Invalid plugin graph: {messages}")


# ---------------------------------------------------------------------------
# Runtime errors
# ---------------------------------------------------------------------------


class PluginRuntimeError(BotflowError):
    """An error raised while a node executes."""

    recoverable: bool = False

    def __init__(self, message: str, node_id: str | None = None, **details: Any):
        self.node_id = node_id
        self.details = details
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class RecoverableError(PluginRuntimeError):
    """Node-local failure. Recorded, never propagated past the node boundary."""

    recoverable = True


class HttpCallFailed(RecoverableError):
    pass


class DatabaseOperationFailed(RecoverableError):
    pass


class JsonOperationFailed(RecoverableError):
    pass


class LoopLimitExceeded(RecoverableError):
    """A for/while loop hit its max-iteration ceiling."""

    def __init__(self, node_id: str, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(
            f"Loop '{node_id}' exceeded {max_iterations} iterations",
            node_id=node_id,
            max_iterations=max_iterations,
        )


class FatalError(PluginRuntimeError):
    """Aborts the invocation."""

    pass


class UndeclaredVariableReference(FatalError):
    def __init__(self, name: str, node_id: str | None = None):
        self.name = name
        super().__init__(
            f"Variable '{name}' is not declared before node '{node_id}'",
            node_id=node_id,
            variable=name,
        )


class UnknownNodeType(FatalError):
    def __init__(self, node_type: str, node_id: str | None = None):
        self.node_type = node_type
        super().__init__(
            f"Unknown node type '{node_type}' on node '{node_id}'",
            node_id=node_id,
            node_type=node_type,
        )


class MalformedGraphError(FatalError):
    """The graph reached the engine in a shape validation should have rejected."""

    pass


class StepLimitExceeded(FatalError):
    pass


class ExternalCallFailed(FatalError):
    """A collaborator call failed with no ``_error`` variable contract."""

    pass


class NodeExecutionError(FatalError):
    """A node could not compute its result (bad operand, bad config value)."""

    pass


# ---------------------------------------------------------------------------
# Hosting errors
# ---------------------------------------------------------------------------


class PluginNotRegistered(BotflowError):
    def __init__(self, plugin_id: str):
        self.plugin_id = plugin_id
        super().__init__(f"Plugin '{plugin_id}' is not registered")
