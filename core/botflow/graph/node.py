"""
Node Protocol - The typed units of behavior in a plugin graph.

A node has an id, a type from a closed set, a display label and a
type-specific config record. The editor stores nodes either flat
({"id", "type", "label", "config"}) or React Flow style
({"id", "type", "data": {"label", "config"}}); both load into NodeSpec.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class NodeType(StrEnum):
    """Every node type the engine knows how to execute."""

    TRIGGER = "trigger"
    RESPONSE = "response"
    VARIABLE = "variable"
    CONDITION = "condition"
    PERMISSION = "permission"
    ACTION = "action"
    DATA = "data"
    HTTP_REQUEST = "http_request"
    MATH_OPERATION = "math_operation"
    STRING_OPERATION = "string_operation"
    ARRAY_OPERATION = "array_operation"
    OBJECT_OPERATION = "object_operation"
    DATABASE = "database"
    JSON = "json"
    EMBED_BUILDER = "embed_builder"
    EMBED_RESPONSE = "embed_response"
    DISCORD_ACTION = "discord_action"
    FOR_LOOP = "for_loop"
    WHILE_LOOP = "while_loop"
    COMPARISON = "comparison"


class PortId(StrEnum):
    """Named output ports on multi-output nodes."""

    TRUE = "true"
    FALSE = "false"
    LOOP_BODY = "loop-body"
    COMPLETE = "complete"
    ALLOWED = "allowed"
    DENIED = "denied"


class Position(BaseModel):
    """Canvas position. Display only."""

    x: float = 0.0
    y: float = 0.0


class NodeSpec(BaseModel):
    """
    Specification for a single node.

    Examples:
        NodeSpec(
            id="greet",
            type="response",
            label="Say hello",
            config={"message": "Hello, {username}!"},
        )

        NodeSpec.model_validate({
            "id": "n2",
            "type": "variable",
            "data": {"label": "User", "config": {"name": "username", "type": "user_name"}},
        })
    """

    id: str
    # Kept as a plain string so unknown types survive loading and are
    # reported by the validator / engine instead of failing the parse.
    type: str
    label: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    position: Position = Field(default_factory=Position)

    model_config = {"extra": "ignore", "frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _unwrap_editor_data(cls, value: Any) -> Any:
        """Accept the editor's {"data": {"label", "config"}} shape."""
        if isinstance(value, dict) and isinstance(value.get("data"), dict):
            data = value["data"]
            value = {k: v for k, v in value.items() if k != "data"}
            value.setdefault("label", data.get("label") or "")
            value.setdefault("config", data.get("config") or {})
        if isinstance(value, dict) and value.get("config") is None:
            value = {**value, "config": {}}
        return value

    @property
    def node_type(self) -> NodeType | None:
        """The typed node kind, or None when the type is not recognized."""
        try:
            return NodeType(self.type)
        except ValueError:
            return None

    @property
    def display_name(self) -> str:
        return self.label or self.id

    def get(self, key: str, default: Any = None) -> Any:
        """Read a config field, treating None and "" as missing."""
        value = self.config.get(key)
        if value is None or value == "":
            return default
        return value
