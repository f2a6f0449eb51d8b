"""Plugin graphs: nodes, edges, scopes, validation, compilation and execution."""

from botflow.graph.compiler import CompiledPlugin, compile_plugin, extract_options, load_graph
from botflow.graph.context import ExecutionContext, PluginResponse, TriggerEvent
from botflow.graph.edge import EdgeSpec, GraphSpec
from botflow.graph.executor import (
    ExecutionResult,
    ExecutionStatus,
    Invocation,
    PluginExecutor,
)
from botflow.graph.expression import ExpressionError, ExpressionEvaluator
from botflow.graph.node import NodeSpec, NodeType, PortId
from botflow.graph.registry import Variable, VariableKind, declared_variables, output_ports
from botflow.graph.scope import (
    build_scope_table,
    find_variable_conflicts,
    get_available_variables,
    get_variable_names,
)
from botflow.graph.template import render
from botflow.graph.validator import (
    GraphValidator,
    IssueKind,
    Severity,
    ValidationIssue,
    ValidationResult,
    validate_graph,
)

__all__ = [
    # Graph model
    "NodeSpec",
    "NodeType",
    "PortId",
    "EdgeSpec",
    "GraphSpec",
    # Variables and scope
    "Variable",
    "VariableKind",
    "declared_variables",
    "output_ports",
    "get_available_variables",
    "get_variable_names",
    "build_scope_table",
    "find_variable_conflicts",
    # Validation and compilation
    "GraphValidator",
    "IssueKind",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "validate_graph",
    "CompiledPlugin",
    "compile_plugin",
    "extract_options",
    "load_graph",
    # Execution
    "ExecutionContext",
    "ExecutionResult",
    "ExecutionStatus",
    "ExpressionError",
    "ExpressionEvaluator",
    "Invocation",
    "PluginExecutor",
    "PluginResponse",
    "TriggerEvent",
    "render",
]
