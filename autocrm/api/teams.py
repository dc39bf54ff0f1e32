"""
Teams API.

GET    /v1/teams                              — Teams visible to the caller
POST   /v1/teams                              — Create a team
PATCH  /v1/teams/{team_id}                    — Rename / re-describe a team
DELETE /v1/teams/{team_id}                    — Soft-delete a team (admin)
GET    /v1/teams/{team_id}/members            — Active members, lead first
POST   /v1/teams/{team_id}/members            — Add a member
DELETE /v1/teams/{team_id}/members/{user_id}  — Remove a member
PUT    /v1/teams/{team_id}/lead               — Assign the team lead
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, get_user
from ..core.retry import retry_async
from ..models.team import Team
from ..services import realtime
from ..services.teams import (
    add_team_member,
    assign_team_lead,
    create_team,
    delete_team,
    get_team_members,
    list_teams,
    remove_team_member,
    update_team,
)
from .common import commit

logger = logging.getLogger(__name__)

teams_router = APIRouter(prefix="/teams", tags=["teams"])


class TeamOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


class TeamSummaryOut(BaseModel):
    id: str
    name: str
    member_count: int = 0


class TeamCreateRequest(BaseModel):
    name: str
    description: Optional[str] = None


class TeamUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class MemberRequest(BaseModel):
    user_id: str


class MemberOut(BaseModel):
    user_id: str
    full_name: str
    email: str
    user_role: str
    avatar_url: str = ""
    role: str
    joined_at: str = ""


def _team_out(t: Team) -> TeamOut:
    return TeamOut(
        id=t.id,
        name=t.name,
        description=t.description,
        created_at=t.created_at.isoformat() if t.created_at else "",
        updated_at=t.updated_at.isoformat() if t.updated_at else "",
    )


@teams_router.get("", response_model=list[TeamSummaryOut])
async def get_teams(
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    teams = await list_teams(db, user)
    return [
        TeamSummaryOut(id=t.team_id, name=t.name, member_count=t.member_count)
        for t in teams
    ]


@teams_router.post("", response_model=TeamOut, status_code=201)
async def post_team(
    request: TeamCreateRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    team = await create_team(db, request.name, user, description=request.description)
    await commit(db, "insert", "teams")
    await realtime.team_changed(team.id, "created", {"name": team.name})
    return _team_out(team)


@teams_router.patch("/{team_id}", response_model=TeamOut)
async def patch_team(
    team_id: str,
    request: TeamUpdateRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    team = await update_team(
        db, team_id, user, name=request.name, description=request.description
    )
    await commit(db, "update", "teams")
    await realtime.team_changed(team.id, "updated", {"name": team.name})
    return _team_out(team)


@teams_router.delete("/{team_id}")
async def remove_team(
    team_id: str,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    await delete_team(db, team_id, user)
    await commit(db, "update", "teams")
    await realtime.team_changed(team_id, "deleted")
    return {"deleted": True, "team_id": team_id}


# ── Membership ───────────────────────────────────────────────────────

@teams_router.get("/{team_id}/members", response_model=list[MemberOut])
async def get_members(
    team_id: str,
    db: AsyncSession = Depends(get_db),
):
    members = await get_team_members(db, team_id)
    return [
        MemberOut(
            user_id=m.user_id,
            full_name=m.full_name,
            email=m.email,
            user_role=m.user_role,
            avatar_url=m.avatar_url,
            role=m.role,
            joined_at=m.joined_at.isoformat() if m.joined_at else "",
        )
        for m in members
    ]


@teams_router.post("/{team_id}/members")
async def post_member(
    team_id: str,
    request: MemberRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    async def _add():
        await add_team_member(db, team_id, request.user_id, user)
        await commit(db, "upsert", "team_members")

    await retry_async(_add, on_retry=db.rollback)
    await realtime.team_changed(team_id, "member_added", {"user_id": request.user_id})
    return {"team_id": team_id, "user_id": request.user_id, "status": "member"}


@teams_router.delete("/{team_id}/members/{member_id}")
async def delete_member(
    team_id: str,
    member_id: str,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    async def _remove():
        await remove_team_member(db, team_id, member_id, user)
        await commit(db, "update", "team_members")

    await retry_async(_remove, on_retry=db.rollback)
    await realtime.team_changed(team_id, "member_removed", {"user_id": member_id})
    return {"team_id": team_id, "user_id": member_id, "status": "removed"}


@teams_router.put("/{team_id}/lead")
async def put_lead(
    team_id: str,
    request: MemberRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    """Assign the team lead. Not retried here; callers re-issue on failure."""
    await assign_team_lead(db, team_id, request.user_id, user)
    await commit(db, "upsert", "team_members")
    await realtime.team_changed(team_id, "lead_assigned", {"user_id": request.user_id})
    return {"team_id": team_id, "user_id": request.user_id, "status": "lead"}
