"""
Chat platform gateway.

Nodes that touch the chat platform (embed_response, discord_action,
permission checks on roles) go through a ChatPlatform:
- ChatPlatform: abstract interface the bot runtime implements
- InertChatPlatform: records every call and returns canned values; used by
  the CLI and in tests
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from botflow.graph.context import TriggerEvent

logger = logging.getLogger(__name__)


@dataclass
class SentMessage:
    """Handle to a message the platform has sent."""

    id: str
    channel_id: str


class ChatPlatform(ABC):
    """Abstract base for platform side effects."""

    @abstractmethod
    async def send_embed(
        self, event: TriggerEvent, embed: dict[str, Any], ephemeral: bool = False
    ) -> SentMessage:
        """Reply to the triggering interaction with an embed."""

    @abstractmethod
    async def send_dm(self, user_id: str, content: str) -> None: ...

    @abstractmethod
    async def add_reaction(self, event: TriggerEvent, emoji: str, message_id: str | None) -> None:
        """React on ``message_id``, or on the triggering message when None."""

    @abstractmethod
    async def has_role(self, event: TriggerEvent, role_id: str) -> bool: ...

    @abstractmethod
    async def add_role(self, event: TriggerEvent, user_id: str, role_id: str) -> None: ...

    @abstractmethod
    async def remove_role(self, event: TriggerEvent, user_id: str, role_id: str) -> None: ...

    @abstractmethod
    async def kick_member(self, event: TriggerEvent, user_id: str, reason: str) -> None: ...

    @abstractmethod
    async def ban_member(
        self, event: TriggerEvent, user_id: str, reason: str, delete_days: int
    ) -> None: ...

    @abstractmethod
    async def create_channel(
        self, event: TriggerEvent, name: str, channel_type: str, topic: str
    ) -> str:
        """Create a channel and return its id."""

    @abstractmethod
    async def delete_channel(self, event: TriggerEvent, channel_id: str) -> None: ...

    @abstractmethod
    async def collect_reactions(
        self, event: TriggerEvent, channel_id: str, message_id: str, emoji: str, time_ms: int
    ) -> int:
        """Wait up to ``time_ms`` and return how many users reacted with ``emoji``."""

    @abstractmethod
    async def setup_single_choice_voting(
        self, event: TriggerEvent, message_id: str, emojis: list[str], duration_ms: int
    ) -> None:
        """
        Keep at most one of ``emojis`` per user on a message for ``duration_ms``.

        Returns once the collector is installed; it runs in the background.
        """


@dataclass
class PlatformCall:
    method: str
    args: dict[str, Any] = field(default_factory=dict)


class InertChatPlatform(ChatPlatform):
    """
    Platform that performs nothing and records every call.

    ``roles`` maps user id to the role ids ``has_role`` should report;
    ``reaction_counts`` maps emoji to the count ``collect_reactions`` returns.
    """

    def __init__(
        self,
        roles: dict[str, list[str]] | None = None,
        reaction_counts: dict[str, int] | None = None,
    ):
        self.calls: list[PlatformCall] = []
        self.roles = roles or {}
        self.reaction_counts = reaction_counts or {}

    def _record(self, method: str, **args: Any) -> None:
        self.calls.append(PlatformCall(method=method, args=args))
        logger.debug(f"Platform call: {method} {args}")

    def calls_to(self, method: str) -> list[PlatformCall]:
        return [c for c in self.calls if c.method == method]

    async def send_embed(
        self, event: TriggerEvent, embed: dict[str, Any], ephemeral: bool = False
    ) -> SentMessage:
        self._record("send_embed", embed=embed, ephemeral=ephemeral)
        return SentMessage(id=uuid.uuid4().hex[:18], channel_id=event.channel_id)

    async def send_dm(self, user_id: str, content: str) -> None:
        self._record("send_dm", user_id=user_id, content=content)

    async def add_reaction(self, event: TriggerEvent, emoji: str, message_id: str | None) -> None:
        self._record("add_reaction", emoji=emoji, message_id=message_id)

    async def has_role(self, event: TriggerEvent, role_id: str) -> bool:
        self._record("has_role", role_id=role_id)
        return role_id in self.roles.get(event.user_id, event.member_roles)

    async def add_role(self, event: TriggerEvent, user_id: str, role_id: str) -> None:
        self._record("add_role", user_id=user_id, role_id=role_id)

    async def remove_role(self, event: TriggerEvent, user_id: str, role_id: str) -> None:
        self._record("remove_role", user_id=user_id, role_id=role_id)

    async def kick_member(self, event: TriggerEvent, user_id: str, reason: str) -> None:
        self._record("kick_member", user_id=user_id, reason=reason)

    async def ban_member(
        self, event: TriggerEvent, user_id: str, reason: str, delete_days: int
    ) -> None:
        self._record("ban_member", user_id=user_id, reason=reason, delete_days=delete_days)

    async def create_channel(
        self, event: TriggerEvent, name: str, channel_type: str, topic: str
    ) -> str:
        self._record("create_channel", name=name, channel_type=channel_type, topic=topic)
        return uuid.uuid4().hex[:18]

    async def delete_channel(self, event: TriggerEvent, channel_id: str) -> None:
        self._record("delete_channel", channel_id=channel_id)

    async def collect_reactions(
        self, event: TriggerEvent, channel_id: str, message_id: str, emoji: str, time_ms: int
    ) -> int:
        self._record(
            "collect_reactions",
            channel_id=channel_id,
            message_id=message_id,
            emoji=emoji,
            time_ms=time_ms,
        )
        return self.reaction_counts.get(emoji, 0)

    async def setup_single_choice_voting(
        self, event: TriggerEvent, message_id: str, emojis: list[str], duration_ms: int
    ) -> None:
        self._record(
            "setup_single_choice_voting",
            message_id=message_id,
            emojis=emojis,
            duration_ms=duration_ms,
        )
