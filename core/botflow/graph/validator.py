"""Structural validation for plugin graphs.

Rejects graphs that cannot be executed (wrong trigger count, dangling
edges, malformed condition text, missing required config) and warns about
graphs that will run but probably not as the author intended.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel

from botflow.graph.edge import GraphSpec
from botflow.graph.expression import validate_expression_syntax
from botflow.graph.node import NodeType
from botflow.graph.registry import NODE_SEMANTICS, missing_config
from botflow.graph.scope import find_variable_conflicts

logger = logging.getLogger(__name__)


class IssueKind(StrEnum):
    # Blocking
    INVALID_TRIGGER_COUNT = "InvalidTriggerCount"
    DANGLING_EDGE = "DanglingEdge"
    INVALID_EXPRESSION_SYNTAX = "InvalidExpressionSyntax"
    TRIGGER_HAS_INCOMING_EDGES = "TriggerHasIncomingEdges"
    MISSING_REQUIRED_CONFIG = "MissingRequiredConfig"
    DUPLICATE_NODE_ID = "DuplicateNodeId"
    # Advisory
    UNKNOWN_NODE_TYPE = "UnknownNodeType"
    ORPHANED_NODE = "OrphanedNode"
    UNREACHABLE_NODE = "UnreachableNode"
    MISSING_RESPONSE = "MissingResponse"
    UNTAGGED_BRANCH_EDGE = "UntaggedBranchEdge"
    VARIABLE_TYPE_CONFLICT = "VariableTypeConflict"


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class ValidationIssue(BaseModel):
    kind: IssueKind
    message: str
    severity: Severity = Severity.ERROR
    node_id: str | None = None
    edge_id: str | None = None

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"[{self.kind}] {self.message}"


@dataclass
class ValidationResult:
    """Result of validating a graph."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def error(self) -> str:
        """Get combined error message."""
        return "; ".join(str(i) for i in self.errors)

    def kinds(self) -> set[IssueKind]:
        return {i.kind for i in self.issues}


class GraphValidator:
    """
    Checks a graph before compilation.

    The expression checker is injectable so the heuristic linter can be
    replaced by a real parser without touching the other checks.
    """

    def __init__(self, expression_checker: Callable[[str], bool] | None = None):
        self.expression_checker = expression_checker or validate_expression_syntax

    def validate(self, graph: GraphSpec) -> ValidationResult:
        result = ValidationResult()
        self._check_node_ids(graph, result)
        self._check_triggers(graph, result)
        self._check_edges(graph, result)
        self._check_nodes(graph, result)
        self._check_connectivity(graph, result)
        self._check_conflicts(graph, result)

        if result.errors:
            logger.debug(f"Graph '{graph.id}' failed validation: {result.error}")
        return result

    # ------------------------------------------------------------------
    # Blocking checks
    # ------------------------------------------------------------------

    def _check_node_ids(self, graph: GraphSpec, result: ValidationResult) -> None:
        seen: set[str] = set()
        for node in graph.nodes:
            if node.id in seen:
                result.issues.append(
                    ValidationIssue(
                        kind=IssueKind.DUPLICATE_NODE_ID,
                        message=f"Node id '{node.id}' is used more than once",
                        node_id=node.id,
                    )
                )
            seen.add(node.id)

    def _check_triggers(self, graph: GraphSpec, result: ValidationResult) -> None:
        triggers = graph.trigger_nodes()
        if len(triggers) == 0:
            result.issues.append(
                ValidationIssue(
                    kind=IssueKind.INVALID_TRIGGER_COUNT,
                    message="Plugin must have exactly one trigger node",
                )
            )
        elif len(triggers) > 1:
            result.issues.append(
                ValidationIssue(
                    kind=IssueKind.INVALID_TRIGGER_COUNT,
                    message=(
                        "Plugin can only have one trigger node, found "
                        f"{[t.id for t in triggers]}"
                    ),
                )
            )

        for trigger in triggers:
            incoming = graph.get_incoming_edges(trigger.id)
            if incoming:
                result.issues.append(
                    ValidationIssue(
                        kind=IssueKind.TRIGGER_HAS_INCOMING_EDGES,
                        message=(
                            f"Trigger '{trigger.display_name}' has incoming edges "
                            f"{[e.id or e.source for e in incoming]}"
                        ),
                        node_id=trigger.id,
                    )
                )

    def _check_edges(self, graph: GraphSpec, result: ValidationResult) -> None:
        for edge in graph.edges:
            for end, node_id in (("source", edge.source), ("target", edge.target)):
                if not graph.has_node(node_id):
                    result.issues.append(
                        ValidationIssue(
                            kind=IssueKind.DANGLING_EDGE,
                            message=f"Edge '{edge.id}' references missing {end} '{node_id}'",
                            edge_id=edge.id,
                        )
                    )

            source = graph.get_node(edge.source)
            if source is None or source.node_type is None:
                continue
            if NODE_SEMANTICS[source.node_type].is_multi_port and edge.port is None:
                result.issues.append(
                    ValidationIssue(
                        kind=IssueKind.UNTAGGED_BRANCH_EDGE,
                        message=(
                            f"Edge '{edge.id}' leaves '{source.display_name}' without a port "
                            "and will never be followed"
                        ),
                        severity=Severity.WARNING,
                        edge_id=edge.id,
                        node_id=source.id,
                    )
                )

    def _check_nodes(self, graph: GraphSpec, result: ValidationResult) -> None:
        for node in graph.nodes:
            node_type = node.node_type
            if node_type is None:
                result.issues.append(
                    ValidationIssue(
                        kind=IssueKind.UNKNOWN_NODE_TYPE,
                        message=f"Node '{node.display_name}' has unknown type '{node.type}'",
                        severity=Severity.WARNING,
                        node_id=node.id,
                    )
                )
                continue

            for name in missing_config(node):
                result.issues.append(
                    ValidationIssue(
                        kind=IssueKind.MISSING_REQUIRED_CONFIG,
                        message=f"Node '{node.display_name}' is missing required '{name}'",
                        node_id=node.id,
                    )
                )

            for name in NODE_SEMANTICS[node_type].expression_fields:
                text = node.config.get(name)
                if text is None:
                    continue
                if not self.expression_checker(str(text)):
                    result.issues.append(
                        ValidationIssue(
                            kind=IssueKind.INVALID_EXPRESSION_SYNTAX,
                            message=(
                                f"Node '{node.display_name}' has invalid {name} syntax: "
                                f"{text!r} (check brackets, quotes, and operators)"
                            ),
                            node_id=node.id,
                        )
                    )

    # ------------------------------------------------------------------
    # Advisory checks
    # ------------------------------------------------------------------

    def _check_connectivity(self, graph: GraphSpec, result: ValidationResult) -> None:
        connected: set[str] = set()
        for edge in graph.edges:
            connected.add(edge.source)
            connected.add(edge.target)

        triggers = graph.trigger_nodes()
        reachable = graph.reachable_from(triggers[0].id) if len(triggers) == 1 else None

        for node in graph.nodes:
            if node.type == NodeType.TRIGGER:
                continue
            if node.id not in connected:
                result.issues.append(
                    ValidationIssue(
                        kind=IssueKind.ORPHANED_NODE,
                        message=f"Node '{node.display_name}' is not connected",
                        severity=Severity.WARNING,
                        node_id=node.id,
                    )
                )
            elif reachable is not None and node.id not in reachable:
                result.issues.append(
                    ValidationIssue(
                        kind=IssueKind.UNREACHABLE_NODE,
                        message=f"Node '{node.display_name}' is not reachable from trigger",
                        severity=Severity.WARNING,
                        node_id=node.id,
                    )
                )

        if not any(
            n.type in (NodeType.RESPONSE, NodeType.EMBED_RESPONSE) for n in graph.nodes
        ):
            result.issues.append(
                ValidationIssue(
                    kind=IssueKind.MISSING_RESPONSE,
                    message="Plugin has no response node and will never reply",
                    severity=Severity.WARNING,
                )
            )

    def _check_conflicts(self, graph: GraphSpec, result: ValidationResult) -> None:
        for name, declarations in find_variable_conflicts(graph).items():
            described = ", ".join(f"{v.type} at '{v.node_id}'" for v in declarations)
            result.issues.append(
                ValidationIssue(
                    kind=IssueKind.VARIABLE_TYPE_CONFLICT,
                    message=f"Variable '{name}' is declared with different types: {described}",
                    severity=Severity.WARNING,
                )
            )


def validate_graph(graph: GraphSpec) -> ValidationResult:
    """Validate with the default heuristic expression checker."""
    return GraphValidator().validate(graph)
