"""
Change notification channels and the flag-gated pub/sub wrapper.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from autocrm.core import redis as core_redis
from autocrm.services import realtime


def test_channel_names():
    assert realtime.entity_skills_channel("agent", "u-1") == "entity_skills:agent:u-1"
    assert realtime.team_channel("t-1") == "team:t-1"


async def test_disabled_feed_is_silent():
    received = []
    unsubscribe = await realtime.subscribe_to_skill_updates("u-1", "agent", received.append)

    await realtime.entity_skills_changed("agent", "u-1", "added")
    await unsubscribe()

    assert received == []


async def test_publish_sends_event_envelope():
    client = SimpleNamespace(publish=AsyncMock())
    with patch.object(core_redis, "get_flags", return_value=SimpleNamespace(use_redis=True)), \
         patch.object(core_redis, "_get_redis", new=AsyncMock(return_value=client)):
        await realtime.team_changed("t-1", "member_added", {"user_id": "u-1"})

    channel, payload = client.publish.await_args.args
    assert channel == "team:t-1"
    assert json.loads(payload) == {
        "type": "teams.member_added",
        "data": {"team_id": "t-1", "user_id": "u-1"},
    }


async def test_publish_failure_is_swallowed():
    failing = AsyncMock(side_effect=ConnectionError("redis down"))
    with patch.object(core_redis, "get_flags", return_value=SimpleNamespace(use_redis=True)), \
         patch.object(core_redis, "_get_redis", new=failing):
        await realtime.entity_skills_changed("team", "t-1", "removed")
