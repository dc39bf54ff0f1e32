"""
Change notifications. Thin wrapper around core.redis.
Provides typed helpers for skill-assignment and team changes.
"""

from typing import Any, Callable

from ..core import redis as _redis


def entity_skills_channel(entity_type: str, entity_id: str) -> str:
    return f"entity_skills:{entity_type}:{entity_id}"


def team_channel(team_id: str) -> str:
    return f"team:{team_id}"


# ── Skill assignment events ──────────────────────────────────────────

async def entity_skills_changed(entity_type: str, entity_id: str, action: str):
    await _redis.publish(
        entity_skills_channel(entity_type, entity_id),
        f"entity_skills.{action}",
        {"entity_id": entity_id, "entity_type": entity_type},
    )


async def subscribe_to_skill_updates(
    entity_id: str, entity_type: str, callback: Callable[[dict], Any]
) -> _redis.Unsubscribe:
    return await _redis.subscribe(entity_skills_channel(entity_type, entity_id), callback)


# ── Team events ──────────────────────────────────────────────────────

async def team_changed(team_id: str, action: str, data: dict = None):
    await _redis.publish(
        team_channel(team_id), f"teams.{action}", {"team_id": team_id, **(data or {})}
    )


async def subscribe_to_team_updates(
    team_id: str, callback: Callable[[dict], Any]
) -> _redis.Unsubscribe:
    return await _redis.subscribe(team_channel(team_id), callback)
