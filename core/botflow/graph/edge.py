"""
Edge Protocol - How nodes connect in a plugin graph.

Edges define:
1. Source and target nodes
2. Optionally, which named output port of the source they leave from

A node whose edges carry no port is single-output. Multi-output nodes
(condition, comparison, loops, permission) tag each edge with a port id
through the editor's ``sourceHandle`` field.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr

from botflow.graph.node import NodeSpec, NodeType, PortId


class EdgeSpec(BaseModel):
    """
    Specification for an edge between nodes.

    Examples:
        # Single-output node
        EdgeSpec(id="e1", source="trigger", target="greet")

        # Leaving the "true" port of a condition
        EdgeSpec(id="e2", source="check", target="reply", sourceHandle="true")
    """

    id: str = ""
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    source_handle: str | None = Field(
        default=None,
        alias="sourceHandle",
        description="Output port of the source node, e.g. 'true' or 'loop-body'",
    )
    target_handle: str | None = Field(default=None, alias="targetHandle")

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    @property
    def port(self) -> PortId | None:
        """
        The port this edge leaves from.

        Handles are matched exactly first; editor handles that embed a
        port id (e.g. "true-output") resolve to that port.
        """
        if not self.source_handle:
            return None
        try:
            return PortId(self.source_handle)
        except ValueError:
            pass
        for port in PortId:
            if port.value in self.source_handle:
                return port
        return None


class GraphSpec(BaseModel):
    """
    Complete specification of a plugin graph.

    Mirrors the persisted JSON document:

        {"nodes": [{"id", "type", "label", "config", "position"}],
         "edges": [{"id", "source", "target", "sourceHandle"?}]}

    The graph is an arena addressed by node id; edges refer to ids, never to
    node objects, so cycles never become reference cycles.
    """

    id: str = "plugin"
    name: str = ""
    description: str = ""
    nodes: list[NodeSpec] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    _index: dict[str, NodeSpec] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        # First node wins on duplicate ids; the validator reports duplicates.
        index: dict[str, NodeSpec] = {}
        for node in self.nodes:
            index.setdefault(node.id, node)
        self._index = index

    # ------------------------------------------------------------------
    # Loading / dumping
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, source: "str | Path | dict[str, Any]") -> "GraphSpec":
        """Load a graph from a dict, a JSON string, or a path to a JSON file."""
        if isinstance(source, dict):
            return cls.model_validate(source)
        if isinstance(source, Path) or (
            isinstance(source, str) and not source.lstrip().startswith("{")
        ):
            with open(source, encoding="utf-8-sig") as f:
                return cls.model_validate(json.load(f))
        return cls.model_validate_json(source)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> NodeSpec | None:
        """Get a node by ID."""
        return self._index.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._index

    def get_outgoing_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges leaving a node, in document order."""
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges entering a node."""
        return [e for e in self.edges if e.target == node_id]

    def trigger_nodes(self) -> list[NodeSpec]:
        return [n for n in self.nodes if n.type == NodeType.TRIGGER]

    def reverse_adjacency(self) -> dict[str, list[str]]:
        """Map every edge target to the sources feeding it. Ports are ignored."""
        reverse: dict[str, list[str]] = {}
        for edge in self.edges:
            reverse.setdefault(edge.target, []).append(edge.source)
        return reverse

    def successors(self, node_id: str, port: PortId | None = None) -> list[str]:
        """
        Target ids reached from ``node_id``.

        With ``port=None`` every outgoing edge counts (single-output nodes).
        Otherwise only edges leaving through ``port``.
        """
        edges = self.get_outgoing_edges(node_id)
        if port is None:
            return [e.target for e in edges]
        return [e.target for e in edges if e.port == port]

    def reachable_from(self, node_id: str) -> set[str]:
        """Node ids reachable by following edges forward from ``node_id``."""
        reachable: set[str] = set()
        to_visit = [node_id]
        while to_visit:
            current = to_visit.pop()
            if current in reachable:
                continue
            reachable.add(current)
            for edge in self.get_outgoing_edges(current):
                to_visit.append(edge.target)
        return reachable
