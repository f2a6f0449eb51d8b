"""
Plugin compiler - the boundary between the editor and the engine.

Takes the persisted ``{nodes, edges}`` document, validates it, and
precomputes what every invocation needs: the trigger, each node's
visible-variable scope, and the slash-command options the bot registers.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from botflow.errors import GraphValidationError
from botflow.graph.edge import GraphSpec
from botflow.graph.node import NodeType
from botflow.graph.scope import build_scope_table
from botflow.graph.validator import GraphValidator, ValidationIssue

logger = logging.getLogger(__name__)

# Discord application command option type for strings.
STRING_OPTION = 3


@dataclass
class CompiledPlugin:
    """A validated graph plus everything precomputed for execution."""

    plugin_id: str
    graph: GraphSpec
    trigger_id: str
    scopes: dict[str, frozenset[str]] = field(default_factory=dict)
    options: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    def scope_of(self, node_id: str) -> frozenset[str]:
        """Variable names declared upstream of ``node_id``."""
        return self.scopes.get(node_id, frozenset())


def load_graph(data: "GraphSpec | str | Path | dict[str, Any]") -> GraphSpec:
    """Accept a GraphSpec, a dict, a JSON string, or a path to a JSON file."""
    if isinstance(data, GraphSpec):
        return data
    return GraphSpec.load(data)


def extract_options(graph: GraphSpec) -> list[dict[str, Any]]:
    """
    Slash-command options for every ``user_input`` variable.

    Options are required unless the node sets ``required: false``.
    """
    options = []
    for node in graph.nodes:
        if node.node_type != NodeType.VARIABLE or node.get("type") != "user_input":
            continue
        name = node.get("name")
        if not name:
            continue
        options.append(
            {
                "type": STRING_OPTION,
                "name": name,
                "description": node.get("description", f"Enter {name}"),
                "required": node.config.get("required") is not False,
            }
        )
    return options


def compile_plugin(
    graph: "GraphSpec | str | Path | dict[str, Any]",
    plugin_id: str | None = None,
    validator: GraphValidator | None = None,
) -> CompiledPlugin:
    """
    Validate and compile a plugin graph.

    Raises:
        GraphValidationError: if the graph has any blocking issue.
    """
    spec = load_graph(graph)
    result = (validator or GraphValidator()).validate(spec)
    if not result.valid:
        raise GraphValidationError(result.errors)

    for warning in result.warnings:
        logger.warning(f"Plugin '{plugin_id or spec.id}': {warning}")

    plugin = CompiledPlugin(
        plugin_id=plugin_id or spec.id,
        graph=spec,
        trigger_id=spec.trigger_nodes()[0].id,
        scopes=build_scope_table(spec),
        options=extract_options(spec),
        warnings=result.warnings,
    )
    logger.info(
        f"Compiled plugin '{plugin.plugin_id}' "
        f"({len(spec.nodes)} nodes, {len(spec.edges)} edges)"
    )
    return plugin
