"""
Skill inheritance: a user inherits every direct skill of every team they
belong to.

aggregate_inherited() merges team skills by name and records which teams
contributed each one (provenance). Direct and inherited skills are kept as
separate entries in the effective view; the two lists describe different
provenance even when they overlap.

Nothing here is cached. Callers recompute after any assignment or
membership change.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import translate_storage_errors
from ..models.skill import EntitySkill, Skill
from ..models.team import Team, TeamMember
from .skills import get_entity_skills

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TeamRef:
    team_id: str
    team_name: str


@dataclass(frozen=True)
class SkillRef:
    skill_id: str
    name: str


@dataclass
class InheritedSkill:
    skill_id: str
    name: str
    contributing_teams: list[TeamRef] = field(default_factory=list)


@dataclass
class EffectiveSkill:
    skill_id: str
    name: str
    source: str  # "direct" | "inherited"
    contributing_teams: list[TeamRef] = field(default_factory=list)


@dataclass
class TeamMembershipView:
    team_id: str
    name: str
    description: Optional[str]
    role: str
    skills: list[SkillRef] = field(default_factory=list)


async def _active_memberships(db: AsyncSession, user_id: str) -> list[tuple[Team, str]]:
    """(team, role) for each active membership of an active team, in join order."""
    with translate_storage_errors("select", "team_members"):
        result = await db.execute(
            select(Team, TeamMember.role)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .where(
                TeamMember.user_id == user_id,
                TeamMember.deleted_at.is_(None),
                Team.deleted_at.is_(None),
            )
            .order_by(TeamMember.joined_at, Team.name, Team.id)
        )
        return [(team, role) for team, role in result.all()]


async def _skills_by_team(db: AsyncSession, team_ids: list[str]) -> dict[str, list[Skill]]:
    """Active direct skills for many teams in one query."""
    grouped: dict[str, list[Skill]] = {tid: [] for tid in team_ids}
    if not team_ids:
        return grouped

    with translate_storage_errors("select", "entity_skills"):
        result = await db.execute(
            select(EntitySkill.entity_id, Skill)
            .join(Skill, Skill.id == EntitySkill.skill_id)
            .where(
                EntitySkill.entity_type == "team",
                EntitySkill.entity_id.in_(team_ids),
                EntitySkill.deleted_at.is_(None),
            )
            .order_by(Skill.name)
        )
        for team_id, skill in result.all():
            grouped[team_id].append(skill)
    return grouped


async def aggregate_inherited(db: AsyncSession, user_id: str) -> list[InheritedSkill]:
    """
    One entry per distinct skill name across the user's teams.
    contributing_teams lists every team with that skill, in processing order.
    """
    memberships = await _active_memberships(db, user_id)
    teams = [team for team, _ in memberships]
    skills_by_team = await _skills_by_team(db, [t.id for t in teams])

    merged: dict[str, InheritedSkill] = {}
    for team in teams:
        ref = TeamRef(team_id=team.id, team_name=team.name)
        for skill in skills_by_team[team.id]:
            entry = merged.get(skill.name)
            if entry is None:
                merged[skill.name] = InheritedSkill(
                    skill_id=skill.id, name=skill.name, contributing_teams=[ref]
                )
            elif ref not in entry.contributing_teams:
                entry.contributing_teams.append(ref)

    logger.debug(
        "User %s inherits %d skill(s) from %d team(s)", user_id, len(merged), len(teams)
    )
    return list(merged.values())


async def get_effective_skills(db: AsyncSession, user_id: str) -> list[EffectiveSkill]:
    """Direct skills first, then inherited ones. Overlaps appear in both."""
    direct = await get_entity_skills(db, user_id, "agent")
    inherited = await aggregate_inherited(db, user_id)

    view = [EffectiveSkill(skill_id=s.id, name=s.name, source="direct") for s in direct]
    view.extend(
        EffectiveSkill(
            skill_id=i.skill_id,
            name=i.name,
            source="inherited",
            contributing_teams=list(i.contributing_teams),
        )
        for i in inherited
    )
    return view


async def get_user_teams(db: AsyncSession, user_id: str) -> list[TeamMembershipView]:
    """The user's active teams with their role and each team's direct skills."""
    memberships = await _active_memberships(db, user_id)
    skills_by_team = await _skills_by_team(db, [team.id for team, _ in memberships])

    return [
        TeamMembershipView(
            team_id=team.id,
            name=team.name,
            description=team.description,
            role=role,
            skills=[SkillRef(skill_id=s.id, name=s.name) for s in skills_by_team[team.id]],
        )
        for team, role in memberships
    ]
