"""Collaborators an invocation talks to: the key/value store and the chat platform."""

from botflow.runtime.platform import ChatPlatform, InertChatPlatform, PlatformCall, SentMessage
from botflow.runtime.state_store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    StoreScope,
    namespace_for,
)

__all__ = [
    "ChatPlatform",
    "InertChatPlatform",
    "PlatformCall",
    "SentMessage",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "StoreScope",
    "namespace_for",
]
