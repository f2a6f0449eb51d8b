"""Tests for the in-memory key/value store."""

import asyncio
import typing

import pytest

from botflow.runtime.state_store import (
    InMemoryKeyValueStore,
    StoreChange,
    StoreScope,
    namespace_for,
)


class TestNamespaces:
    def test_format(self):
        assert namespace_for("poll", StoreScope.GUILD, "g1") == "poll:guild:g1"
        assert namespace_for("poll", StoreScope.USER, "") == "poll:user:_"


class TestInMemoryKeyValueStore:
    @pytest.mark.asyncio
    async def test_crud(self, store):
        assert await store.get("ns", "k") is None
        await store.set("ns", "k", {"votes": 1})

        assert await store.get("ns", "k") == {"votes": 1}
        assert await store.exists("ns", "k") is True
        assert await store.list("ns") == ["k"]
        assert await store.delete("ns", "k") is True
        assert await store.delete("ns", "k") is False
        assert await store.exists("ns", "k") is False

    @pytest.mark.asyncio
    async def test_namespaces_are_isolated(self, store):
        await store.set("a", "k", 1)
        assert await store.get("b", "k") is None
        assert await store.list("b") == []

    @pytest.mark.asyncio
    async def test_values_are_copied(self, store):
        value = {"items": [1]}
        await store.set("ns", "k", value)
        value["items"].append(2)

        stored = await store.get("ns", "k")
        stored["items"].append(3)

        assert await store.get("ns", "k") == {"items": [1]}

    @pytest.mark.asyncio
    async def test_history(self, store):
        await store.set("ns", "k", 1)
        await store.set("ns", "k", 2)
        await store.delete("ns", "k")

        assert [(c.old_value, c.new_value) for c in store.history()] == [
            (None, 1),
            (1, 2),
            (2, None),
        ]

    @pytest.mark.asyncio
    async def test_concurrent_writers(self, store):
        await asyncio.gather(*(store.set("ns", f"k{i}", i) for i in range(20)))
        assert len(await store.list("ns")) == 20

    def test_history_annotation_resolves_to_builtin_list(self):
        hints = typing.get_type_hints(InMemoryKeyValueStore.history)
        assert hints["return"] == list[StoreChange]
