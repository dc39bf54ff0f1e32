"""
Team lead reconciliation, team CRUD and membership.
"""

import pytest
from sqlalchemy import select

from autocrm.core.errors import AuthorizationError, ErrorCode, ValidationError
from autocrm.models import TeamMember
from autocrm.services.permissions import is_team_lead, require_role
from autocrm.services.teams import (
    add_team_member,
    assign_team_lead,
    create_team,
    delete_team,
    get_team_members,
    list_teams,
    remove_team_member,
    update_team,
)

from conftest import ADMIN, AGENT, join, make_team


async def _roles(db, team_id) -> dict[str, str]:
    result = await db.execute(
        select(TeamMember)
        .where(TeamMember.team_id == team_id, TeamMember.deleted_at.is_(None))
        .execution_options(populate_existing=True)
    )
    return {m.user_id: m.role for m in result.scalars().all()}


# ── Permissions ──────────────────────────────────────────────────────

async def test_require_role(db, users):
    await require_role(db, ADMIN, "admin")
    await require_role(db, ADMIN, "team_manager")

    with pytest.raises(AuthorizationError) as exc:
        await require_role(db, AGENT, "team_manager")
    assert exc.value.code == ErrorCode.INSUFFICIENT_ROLE
    assert exc.value.required_role == "team_manager"

    team = await make_team(db, "support")
    await join(db, team, "agent-1", role="lead")
    assert await is_team_lead(db, "agent-1")
    await require_role(db, AGENT, "team_manager")

    with pytest.raises(AuthorizationError):
        await require_role(db, AGENT, "admin")


# ── Team lead ────────────────────────────────────────────────────────

async def test_assign_lead_demotes_previous_lead(db, users):
    team = await make_team(db, "support", members=[("agent-1", "lead"), ("agent-2", "member")])

    await assign_team_lead(db, team.id, "agent-2", ADMIN)
    await db.commit()

    assert await _roles(db, team.id) == {"agent-1": "member", "agent-2": "lead"}


async def test_assign_lead_adds_non_member(db, users):
    team = await make_team(db, "support", members=[("agent-1", "member")])

    await assign_team_lead(db, team.id, "agent-2", ADMIN)
    await db.commit()

    assert await _roles(db, team.id) == {"agent-1": "member", "agent-2": "lead"}


async def test_assign_lead_is_idempotent(db, users):
    team = await make_team(db, "support", members=[("agent-1", "member")])

    await assign_team_lead(db, team.id, "agent-1", ADMIN)
    await assign_team_lead(db, team.id, "agent-1", ADMIN)
    await db.commit()

    assert await _roles(db, team.id) == {"agent-1": "lead"}


async def test_assign_lead_repairs_multiple_leads(db, users):
    team = await make_team(
        db, "support", members=[("agent-1", "lead"), ("agent-2", "lead"), ("admin-1", "member")]
    )

    await assign_team_lead(db, team.id, "admin-1", ADMIN)
    await db.commit()

    roles = await _roles(db, team.id)
    assert [u for u, r in roles.items() if r == "lead"] == ["admin-1"]


async def test_assign_lead_revives_removed_member(db, users):
    team = await make_team(db, "support", members=[("agent-1", "member")])
    await remove_team_member(db, team.id, "agent-1", ADMIN)
    await db.commit()

    await assign_team_lead(db, team.id, "agent-1", ADMIN)
    await db.commit()

    assert await _roles(db, team.id) == {"agent-1": "lead"}


async def test_assign_lead_requires_team_manager(db, users):
    team = await make_team(db, "support", members=[("agent-2", "lead")])

    with pytest.raises(AuthorizationError):
        await assign_team_lead(db, team.id, "agent-1", AGENT)
    assert await _roles(db, team.id) == {"agent-2": "lead"}


async def test_assign_lead_unknown_team(db, users):
    with pytest.raises(ValidationError) as exc:
        await assign_team_lead(db, "missing", "agent-1", ADMIN)
    assert exc.value.code == ErrorCode.NOT_FOUND


# ── Team CRUD ────────────────────────────────────────────────────────

async def test_create_team_validates_name(db, users):
    team = await create_team(db, "tier-2_support", ADMIN, description="Escalations")
    await db.commit()
    assert team.name == "tier-2_support"
    assert team.created_at is not None

    for bad in ["", "has space", "x" * 21, "émoji"]:
        with pytest.raises(ValidationError) as exc:
            await create_team(db, bad, ADMIN)
        assert exc.value.field == "name"

    with pytest.raises(ValidationError) as exc:
        await create_team(db, "ok", ADMIN, description="x" * 501)
    assert exc.value.field == "description"


async def test_create_team_duplicate_name(db, users):
    await create_team(db, "support", ADMIN)
    await db.commit()

    with pytest.raises(ValidationError) as exc:
        await create_team(db, "support", ADMIN)
    assert exc.value.code == ErrorCode.DUPLICATE_VALUE


async def test_create_team_requires_team_manager(db, users):
    with pytest.raises(AuthorizationError):
        await create_team(db, "support", AGENT)


async def test_deleted_team_frees_its_name(db, users):
    team = await create_team(db, "support", ADMIN)
    await db.commit()
    await delete_team(db, team.id, ADMIN)
    await db.commit()

    again = await create_team(db, "support", ADMIN)
    await db.commit()
    assert again.id != team.id


async def test_update_team(db, users):
    team = await create_team(db, "support", ADMIN)
    await create_team(db, "sales", ADMIN)
    await db.commit()

    updated = await update_team(db, team.id, ADMIN, name="care", description="Customer care")
    await db.commit()
    assert (updated.name, updated.description) == ("care", "Customer care")

    with pytest.raises(ValidationError) as exc:
        await update_team(db, team.id, ADMIN, name="sales")
    assert exc.value.code == ErrorCode.DUPLICATE_VALUE


async def test_delete_team_is_admin_only(db, users):
    team = await make_team(db, "support", members=[("agent-1", "lead")])

    with pytest.raises(AuthorizationError):
        await delete_team(db, team.id, AGENT)

    await delete_team(db, team.id, ADMIN)
    await db.commit()

    with pytest.raises(ValidationError) as exc:
        await delete_team(db, team.id, ADMIN)
    assert exc.value.code == ErrorCode.NOT_FOUND


async def test_list_teams_counts_members_and_scopes_non_admins(db, users):
    support = await make_team(db, "support", members=[("agent-1", "lead"), ("agent-2", "member")])
    await make_team(db, "sales", members=[("agent-2", "member")])
    await make_team(db, "empty")

    all_teams = await list_teams(db, ADMIN)
    assert [(t.name, t.member_count) for t in all_teams] == [
        ("empty", 0),
        ("sales", 1),
        ("support", 2),
    ]

    mine = await list_teams(db, AGENT)
    assert [t.team_id for t in mine] == [support.id]


# ── Membership ───────────────────────────────────────────────────────

async def test_add_and_remove_members(db, users):
    team = await make_team(db, "support")

    await add_team_member(db, team.id, "agent-1", ADMIN)
    await add_team_member(db, team.id, "agent-1", ADMIN)
    await add_team_member(db, team.id, "agent-2", ADMIN)
    await db.commit()
    assert await _roles(db, team.id) == {"agent-1": "member", "agent-2": "member"}

    await remove_team_member(db, team.id, "agent-1", ADMIN)
    await remove_team_member(db, team.id, "agent-1", ADMIN)
    await remove_team_member(db, team.id, "nobody", ADMIN)
    await db.commit()
    assert await _roles(db, team.id) == {"agent-2": "member"}

    await add_team_member(db, team.id, "agent-1", ADMIN)
    await db.commit()
    assert await _roles(db, team.id) == {"agent-1": "member", "agent-2": "member"}


async def test_add_member_to_missing_team(db, users):
    with pytest.raises(ValidationError):
        await add_team_member(db, "missing", "agent-1", ADMIN)


async def test_get_team_members_lead_first_then_name(db, users):
    team = await make_team(
        db,
        "support",
        members=[("agent-1", "member"), ("agent-2", "member"), ("admin-1", "lead")],
    )

    members = await get_team_members(db, team.id)

    assert [m.full_name for m in members] == ["Ada Admin", "alice Agent", "Bob Agent"]
    assert members[0].role == "lead"
    assert members[1].email == "agent2@example.com"
    assert members[1].avatar_url == ""
