"""
User skill views.

GET /v1/users/{user_id}/skills/inherited  — Skills inherited from teams
GET /v1/users/{user_id}/skills/effective  — Direct + inherited skills
GET /v1/users/{user_id}/teams             — Teams with role and skills
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db
from ..services.inheritance import (
    TeamRef,
    aggregate_inherited,
    get_effective_skills,
    get_user_teams,
)

users_router = APIRouter(prefix="/users", tags=["users"])


class TeamRefOut(BaseModel):
    team_id: str
    team_name: str


class InheritedSkillOut(BaseModel):
    skill_id: str
    name: str
    contributing_teams: list[TeamRefOut] = []


class EffectiveSkillOut(BaseModel):
    skill_id: str
    name: str
    source: str
    contributing_teams: list[TeamRefOut] = []


class SkillRefOut(BaseModel):
    skill_id: str
    name: str


class UserTeamOut(BaseModel):
    team_id: str
    name: str
    description: Optional[str] = None
    role: str
    skills: list[SkillRefOut] = []


def _refs(teams: list[TeamRef]) -> list[TeamRefOut]:
    return [TeamRefOut(team_id=t.team_id, team_name=t.team_name) for t in teams]


@users_router.get("/{user_id}/skills/inherited", response_model=list[InheritedSkillOut])
async def get_inherited_skills(user_id: str, db: AsyncSession = Depends(get_db)):
    inherited = await aggregate_inherited(db, user_id)
    return [
        InheritedSkillOut(
            skill_id=s.skill_id,
            name=s.name,
            contributing_teams=_refs(s.contributing_teams),
        )
        for s in inherited
    ]


@users_router.get("/{user_id}/skills/effective", response_model=list[EffectiveSkillOut])
async def get_effective(user_id: str, db: AsyncSession = Depends(get_db)):
    effective = await get_effective_skills(db, user_id)
    return [
        EffectiveSkillOut(
            skill_id=s.skill_id,
            name=s.name,
            source=s.source,
            contributing_teams=_refs(s.contributing_teams),
        )
        for s in effective
    ]


@users_router.get("/{user_id}/teams", response_model=list[UserTeamOut])
async def get_teams_for_user(user_id: str, db: AsyncSession = Depends(get_db)):
    teams = await get_user_teams(db, user_id)
    return [
        UserTeamOut(
            team_id=t.team_id,
            name=t.name,
            description=t.description,
            role=t.role,
            skills=[SkillRefOut(skill_id=s.skill_id, name=s.name) for s in t.skills],
        )
        for t in teams
    ]
