"""
Team-to-member skill inheritance.
"""

from datetime import datetime, timezone

from sqlalchemy import update

from autocrm.models import Team, TeamMember
from autocrm.services.inheritance import (
    TeamRef,
    aggregate_inherited,
    get_effective_skills,
    get_user_teams,
)
from autocrm.services.skills import add_skills_to_entity, remove_skills_from_entity

from conftest import join, make_team


async def test_user_without_teams_inherits_nothing(db, users):
    assert await aggregate_inherited(db, "agent-1") == []
    assert await get_user_teams(db, "agent-1") == []


async def test_skills_merge_by_name_with_provenance(db, users):
    support = await make_team(db, "support", skills=["Billing", "Refunds"])
    sales = await make_team(db, "sales", skills=["billing", "upsell"])
    await join(db, support, "agent-1", minute=0)
    await join(db, sales, "agent-1", minute=1)

    inherited = await aggregate_inherited(db, "agent-1")

    by_name = {s.name: s for s in inherited}
    assert list(by_name) == ["billing", "refunds", "upsell"]
    assert by_name["billing"].contributing_teams == [
        TeamRef(team_id=support.id, team_name="support"),
        TeamRef(team_id=sales.id, team_name="sales"),
    ]
    assert by_name["refunds"].contributing_teams == [TeamRef(support.id, "support")]
    assert by_name["upsell"].contributing_teams == [TeamRef(sales.id, "sales")]


async def test_team_order_follows_join_order(db, users):
    zeta = await make_team(db, "zeta", skills=["billing"])
    alpha = await make_team(db, "alpha", skills=["billing"])
    await join(db, zeta, "agent-1", minute=0)
    await join(db, alpha, "agent-1", minute=5)

    [billing] = await aggregate_inherited(db, "agent-1")
    assert [t.team_name for t in billing.contributing_teams] == ["zeta", "alpha"]


async def test_removed_membership_stops_inheritance(db, users):
    support = await make_team(db, "support", skills=["billing"])
    await join(db, support, "agent-1")

    await db.execute(
        update(TeamMember)
        .where(TeamMember.team_id == support.id, TeamMember.user_id == "agent-1")
        .values(deleted_at=datetime.now(timezone.utc))
    )
    await db.commit()

    assert await aggregate_inherited(db, "agent-1") == []


async def test_deleted_team_stops_inheritance(db, users):
    support = await make_team(db, "support", skills=["billing"])
    await join(db, support, "agent-1")

    await db.execute(
        update(Team).where(Team.id == support.id).values(deleted_at=datetime.now(timezone.utc))
    )
    await db.commit()

    assert await aggregate_inherited(db, "agent-1") == []
    assert await get_user_teams(db, "agent-1") == []


async def test_removed_team_skill_is_not_inherited(db, users):
    support = await make_team(db, "support", skills=["billing", "refunds"])
    await join(db, support, "agent-1")
    await remove_skills_from_entity(db, support.id, "team", ["billing"])
    await db.commit()

    assert [s.name for s in await aggregate_inherited(db, "agent-1")] == ["refunds"]


async def test_effective_skills_lists_direct_then_inherited(db, users):
    support = await make_team(db, "support", skills=["billing", "refunds"])
    await join(db, support, "agent-1")
    await add_skills_to_entity(db, "agent-1", "agent", ["Live Chat", "billing"])
    await db.commit()

    effective = await get_effective_skills(db, "agent-1")

    assert [(s.name, s.source) for s in effective] == [
        ("billing", "direct"),
        ("live_chat", "direct"),
        ("billing", "inherited"),
        ("refunds", "inherited"),
    ]
    assert effective[0].contributing_teams == []
    assert effective[2].contributing_teams == [TeamRef(support.id, "support")]


async def test_get_user_teams_includes_role_and_team_skills(db, users):
    support = await make_team(db, "support", skills=["refunds", "billing"])
    empty = await make_team(db, "empty")
    await join(db, support, "agent-1", role="lead", minute=0)
    await join(db, empty, "agent-1", minute=1)

    teams = await get_user_teams(db, "agent-1")

    assert [(t.name, t.role) for t in teams] == [("support", "lead"), ("empty", "member")]
    assert [s.name for s in teams[0].skills] == ["billing", "refunds"]
    assert teams[1].skills == []
