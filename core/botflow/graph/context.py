"""
Per-invocation runtime state.

An ExecutionContext is created when a trigger fires and discarded when the
invocation ends. It is never shared between invocations.
"""

from collections.abc import Iterator, Mapping
from typing import Any

from pydantic import BaseModel, Field


class TriggerEvent(BaseModel):
    """The chat event that fired a plugin's trigger."""

    user_id: str = ""
    username: str = ""
    avatar_url: str | None = None
    channel_id: str = ""
    channel_name: str = ""
    guild_id: str = ""
    guild_name: str = ""
    content: str = Field(default="", description="Message text for message triggers")
    options: dict[str, Any] = Field(
        default_factory=dict, description="Slash-command option values by name"
    )
    member_roles: list[str] = Field(default_factory=list)
    member_permissions: list[str] = Field(default_factory=list)

    model_config = {"extra": "allow"}


class PluginResponse(BaseModel):
    """A reply produced by a response or embed_response node."""

    node_id: str
    content: str | None = None
    embeds: list[dict[str, Any]] = Field(default_factory=list)
    ephemeral: bool = False


class ExecutionContext(Mapping[str, Any]):
    """
    Variable bindings for one invocation.

    Read-only Mapping interface for lookups and interpolation; writes go
    through ``bind``/``unbind`` so every mutation is logged in one place.
    """

    def __init__(self, event: TriggerEvent | None = None):
        self.event = event or TriggerEvent()
        self._values: dict[str, Any] = {}

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def bind(self, name: str, value: Any) -> None:
        self._values[name] = value

    def unbind(self, *names: str) -> None:
        for name in names:
            self._values.pop(name, None)

    def snapshot(self) -> dict[str, Any]:
        return dict(self._values)
