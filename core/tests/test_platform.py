"""Tests for the inert chat platform."""

import pytest

from botflow.graph.context import TriggerEvent
from botflow.runtime.platform import InertChatPlatform


class TestInertChatPlatform:
    @pytest.mark.asyncio
    async def test_records_calls(self, platform):
        event = TriggerEvent(channel_id="c1")

        sent = await platform.send_embed(event, {"title": "Hi"}, ephemeral=True)
        await platform.kick_member(event, "7", "spam")

        assert sent.channel_id == "c1"
        assert [c.method for c in platform.calls] == ["send_embed", "kick_member"]
        assert platform.calls_to("kick_member")[0].args == {"user_id": "7", "reason": "spam"}

    @pytest.mark.asyncio
    async def test_has_role_defaults_to_event_roles(self):
        platform = InertChatPlatform(roles={"42": ["r-admin"]})

        assert await platform.has_role(TriggerEvent(user_id="42"), "r-admin") is True
        assert await platform.has_role(TriggerEvent(user_id="7", member_roles=["r-x"]), "r-x")
        assert not await platform.has_role(TriggerEvent(user_id="7"), "r-admin")

    @pytest.mark.asyncio
    async def test_collect_reactions(self):
        platform = InertChatPlatform(reaction_counts={"👍": 3})
        event = TriggerEvent()

        assert await platform.collect_reactions(event, "c1", "m1", "👍", 1000) == 3
        assert await platform.collect_reactions(event, "c1", "m1", "👎", 1000) == 0
