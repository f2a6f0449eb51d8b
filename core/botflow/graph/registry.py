"""
Node Semantics Registry.

For each node type this module answers three questions:
1. Which config fields declare variables, and of what kind?
2. Which named output ports does the node expose?
3. Which config fields must be present for the node to be valid?

Every NodeType has exactly one entry in NODE_SEMANTICS; a missing entry is
an import-time error.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel

from botflow.errors import UnknownNodeType
from botflow.graph.node import NodeSpec, NodeType, PortId


class VariableKind(StrEnum):
    """Closed set of value kinds a declared variable can carry."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    EMBED = "embed"
    HTTP_RESPONSE = "http_response"
    DATABASE_VALUE = "database_value"
    LOOP_ITEM = "loop_item"
    DATA = "data"


class Variable(BaseModel):
    """A named binding with provenance. Derived from the graph, never stored."""

    name: str
    type: VariableKind
    source: str
    node_id: str
    node_label: str = ""

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.name} ({self.type} from {self.source})"


# Ports of a single-output node.
SINGLE_PORT: frozenset[PortId | None] = frozenset({None})

BRANCH_PORTS: frozenset[PortId | None] = frozenset({PortId.TRUE, PortId.FALSE})
LOOP_PORTS: frozenset[PortId | None] = frozenset({PortId.LOOP_BODY, PortId.COMPLETE})
PERMISSION_PORTS: frozenset[PortId | None] = frozenset({PortId.ALLOWED, PortId.DENIED})

Declarer = Callable[[NodeSpec, str], list[Variable]]


@dataclass(frozen=True)
class NodeSemantics:
    """Static facts about one node type."""

    source: str
    declares: Declarer
    ports: frozenset[PortId | None] = SINGLE_PORT
    required: tuple[str, ...] = ()
    # Fields whose text is a host expression (checked by the syntax linter).
    expression_fields: tuple[str, ...] = field(default=())

    @property
    def is_multi_port(self) -> bool:
        return self.ports != SINGLE_PORT


# ---------------------------------------------------------------------------
# Declarers
# ---------------------------------------------------------------------------


def _var(node: NodeSpec, source: str, name: str, kind: VariableKind) -> Variable:
    return Variable(
        name=name,
        type=kind,
        source=source,
        node_id=node.id,
        node_label=node.label or source,
    )


def _nothing(node: NodeSpec, source: str) -> list[Variable]:
    return []


def _one(field_name: str, kind: VariableKind) -> Declarer:
    def declare(node: NodeSpec, source: str) -> list[Variable]:
        name = node.get(field_name)
        return [_var(node, source, name, kind)] if name else []

    return declare


_VARIABLE_KINDS = {
    "random_number": VariableKind.NUMBER,
    "number": VariableKind.NUMBER,
    "boolean": VariableKind.BOOLEAN,
    "array": VariableKind.ARRAY,
    "object": VariableKind.OBJECT,
}


def _declare_variable(node: NodeSpec, source: str) -> list[Variable]:
    name = node.get("name")
    if not name:
        return []
    kind = _VARIABLE_KINDS.get(node.get("type", "string"), VariableKind.STRING)
    return [_var(node, source, name, kind)]


def _declare_http(node: NodeSpec, source: str) -> list[Variable]:
    # Fixed three-way fan-out: a response, its status, and the error slot.
    base = node.get("responseVar")
    if not base:
        return []
    return [
        _var(node, source, base, VariableKind.HTTP_RESPONSE),
        _var(node, source, f"{base}_status", VariableKind.NUMBER),
        _var(node, source, f"{base}_error", VariableKind.STRING),
    ]


def _declare_for_loop(node: NodeSpec, source: str) -> list[Variable]:
    return _one("iteratorVar", VariableKind.LOOP_ITEM)(node, source) + _one(
        "errorVar", VariableKind.STRING
    )(node, source)


def _declare_array(node: NodeSpec, source: str) -> list[Variable]:
    name = node.get("resultVar") or node.get("outputVar")
    return [_var(node, source, name, VariableKind.ARRAY)] if name else []


_DATABASE_KINDS = {
    "get": VariableKind.DATABASE_VALUE,
    "exists": VariableKind.BOOLEAN,
    "list": VariableKind.ARRAY,
}


def _declare_database(node: NodeSpec, source: str) -> list[Variable]:
    name = node.get("resultVar")
    kind = _DATABASE_KINDS.get(node.get("operation", "get"))
    if not name or kind is None:
        return []
    return [
        _var(node, source, name, kind),
        _var(node, source, f"{name}_error", VariableKind.STRING),
    ]


def _declare_json(node: NodeSpec, source: str) -> list[Variable]:
    name = node.get("outputVar")
    if not name:
        return []
    kind = VariableKind.OBJECT if node.get("operation", "parse") == "parse" else VariableKind.STRING
    return [
        _var(node, source, name, kind),
        _var(node, source, f"{name}_error", VariableKind.STRING),
    ]


# ---------------------------------------------------------------------------
# The registry
# ---------------------------------------------------------------------------

NODE_SEMANTICS: dict[NodeType, NodeSemantics] = {
    NodeType.TRIGGER: NodeSemantics("Trigger", _nothing),
    NodeType.RESPONSE: NodeSemantics("Response", _nothing),
    NodeType.VARIABLE: NodeSemantics("Variable Node", _declare_variable, required=("name",)),
    NodeType.CONDITION: NodeSemantics(
        "Condition", _nothing, ports=BRANCH_PORTS, expression_fields=("condition",)
    ),
    NodeType.PERMISSION: NodeSemantics("Permission", _nothing, ports=PERMISSION_PORTS),
    NodeType.ACTION: NodeSemantics("Action", _nothing),
    NodeType.DATA: NodeSemantics(
        "Data Node", _one("name", VariableKind.DATA), required=("name",)
    ),
    NodeType.HTTP_REQUEST: NodeSemantics("HTTP Request", _declare_http, required=("url",)),
    NodeType.MATH_OPERATION: NodeSemantics(
        "Math Operation", _one("resultVar", VariableKind.NUMBER)
    ),
    NodeType.STRING_OPERATION: NodeSemantics(
        "String Operation", _one("resultVar", VariableKind.STRING)
    ),
    NodeType.ARRAY_OPERATION: NodeSemantics("Array Operation", _declare_array),
    NodeType.OBJECT_OPERATION: NodeSemantics(
        "Object Operation", _one("outputVar", VariableKind.OBJECT)
    ),
    NodeType.DATABASE: NodeSemantics("Database", _declare_database),
    NodeType.JSON: NodeSemantics("JSON", _declare_json),
    NodeType.EMBED_BUILDER: NodeSemantics("Embed Builder", _one("embedVar", VariableKind.EMBED)),
    NodeType.EMBED_RESPONSE: NodeSemantics("Embed Response", _nothing),
    NodeType.DISCORD_ACTION: NodeSemantics(
        "Discord Action", _one("outputVar", VariableKind.BOOLEAN)
    ),
    NodeType.FOR_LOOP: NodeSemantics(
        "For Loop",
        _declare_for_loop,
        ports=LOOP_PORTS,
        required=("arrayVar",),
    ),
    NodeType.WHILE_LOOP: NodeSemantics(
        "While Loop",
        _one("errorVar", VariableKind.STRING),
        ports=LOOP_PORTS,
        required=("condition",),
        expression_fields=("condition",),
    ),
    NodeType.COMPARISON: NodeSemantics(
        "Comparison", _one("outputVar", VariableKind.BOOLEAN), ports=BRANCH_PORTS
    ),
}

_missing = set(NodeType) - set(NODE_SEMANTICS)
if _missing:
    raise RuntimeError(f"Node semantics missing for: {sorted(_missing)}")


def semantics_for(node: NodeSpec) -> NodeSemantics:
    """Look up a node's semantics, raising UnknownNodeType for foreign types."""
    node_type = node.node_type
    if node_type is None:
        raise UnknownNodeType(node.type, node_id=node.id)
    return NODE_SEMANTICS[node_type]


def declared_variables(node: NodeSpec) -> list[Variable]:
    """
    Variables a single node declares. Pure function of the node's type and config.

    Unknown node types declare nothing.
    """
    node_type = node.node_type
    if node_type is None:
        return []
    semantics = NODE_SEMANTICS[node_type]
    return semantics.declares(node, semantics.source)


def output_ports(node: NodeSpec) -> frozenset[PortId | None]:
    """Named output ports, or ``{None}`` for a single unnamed port."""
    node_type = node.node_type
    if node_type is None:
        return SINGLE_PORT
    return NODE_SEMANTICS[node_type].ports


def required_config(node: NodeSpec) -> tuple[str, ...]:
    node_type = node.node_type
    if node_type is None:
        return ()
    return NODE_SEMANTICS[node_type].required


def missing_config(node: NodeSpec) -> list[str]:
    """Required config fields absent (or empty) on this node."""
    return [name for name in required_config(node) if node.get(name) is None]
