"""
Persistent key/value store reached by ``database`` and ``set_state`` nodes.

The store is the only mutable resource shared between concurrent
invocations, so serializing access is the store's job, not the engine's.

Namespaces:
- ``StoreScope.GUILD``: one namespace per (plugin, guild)
- ``StoreScope.USER``: one namespace per (plugin, user)
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class StoreScope(StrEnum):
    """Which chat entity a plugin's stored values belong to."""

    GUILD = "guild"
    USER = "user"


def namespace_for(plugin_id: str, scope: StoreScope, owner_id: str) -> str:
    return f"{plugin_id}:{scope}:{owner_id or '_'}"


class KeyValueStore(ABC):
    """Abstract base for the plugin key/value store."""

    @abstractmethod
    async def get(self, namespace: str, key: str) -> Any:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    async def set(self, namespace: str, key: str, value: Any) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    async def delete(self, namespace: str, key: str) -> bool:
        """Remove ``key``. Returns whether it existed."""

    @abstractmethod
    async def list(self, namespace: str) -> list[str]:
        """Keys in ``namespace``, sorted."""

    async def exists(self, namespace: str, key: str) -> bool:
        return key in await self.list(namespace)


@dataclass
class StoreChange:
    """Record of a store mutation."""

    namespace: str
    key: str
    old_value: Any
    new_value: Any
    timestamp: float = field(default_factory=time.time)


class InMemoryKeyValueStore(KeyValueStore):
    """
    Process-local store guarded by an asyncio lock.

    Values are deep-copied on the way in and out so an invocation can never
    mutate stored state through a shared reference.

    Example:
        store = InMemoryKeyValueStore()
        await store.set("poll:guild:123", "votes", 4)
        await store.get("poll:guild:123", "votes")  # 4
    """

    def __init__(self, max_history: int = 1000):
        self._data: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self._history: list[StoreChange] = []
        self._max_history = max_history

    async def get(self, namespace: str, key: str) -> Any:
        async with self._lock:
            return copy.deepcopy(self._data.get(namespace, {}).get(key))

    async def set(self, namespace: str, key: str, value: Any) -> None:
        async with self._lock:
            bucket = self._data.setdefault(namespace, {})
            old_value = bucket.get(key)
            bucket[key] = copy.deepcopy(value)
            self._record(StoreChange(namespace, key, old_value, value))
        logger.debug(f"Stored {namespace}/{key}")

    async def delete(self, namespace: str, key: str) -> bool:
        async with self._lock:
            bucket = self._data.get(namespace, {})
            if key not in bucket:
                return False
            old_value = bucket.pop(key)
            self._record(StoreChange(namespace, key, old_value, None))
            return True

    async def list(self, namespace: str) -> list[str]:
        async with self._lock:
            return sorted(self._data.get(namespace, {}))

    async def exists(self, namespace: str, key: str) -> bool:
        async with self._lock:
            return key in self._data.get(namespace, {})

    def history(self) -> list[StoreChange]:
        return list(self._history)

    def _record(self, change: StoreChange) -> None:
        self._history.append(change)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history :]
