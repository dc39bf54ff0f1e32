"""
Team management: lead reconciliation, team CRUD and membership.

Every write checks the caller's role first and fails before touching any
row. Teams and memberships are soft-deleted.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.errors import ErrorCode, StorageError, ValidationError, translate_storage_errors
from ..models.base import utcnow
from ..models.team import Team, TeamMember
from ..models.user import User
from .permissions import is_admin, require_role

logger = logging.getLogger(__name__)

MAX_TEAM_NAME_LENGTH = 20
MAX_DESCRIPTION_LENGTH = 500
_TEAM_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class TeamSummary:
    team_id: str
    name: str
    member_count: int


@dataclass
class TeamMemberView:
    user_id: str
    full_name: str
    email: str
    user_role: str
    avatar_url: str
    role: str
    joined_at: Optional[datetime]


# ── Validation ───────────────────────────────────────────────────────

def _validate_team_name(name: str) -> str:
    if not isinstance(name, str) or not 1 <= len(name) <= MAX_TEAM_NAME_LENGTH:
        raise ValidationError(
            f"Team name must be 1-{MAX_TEAM_NAME_LENGTH} characters", field="name", value=name
        )
    if not _TEAM_NAME.match(name):
        raise ValidationError(
            "Team name may only contain letters, digits, '_' and '-'", field="name", value=name
        )
    return name


def _validate_description(description: Optional[str]) -> Optional[str]:
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters",
            field="description",
            value=description,
        )
    return description


def _duplicate_name(name: str) -> ValidationError:
    return ValidationError(
        "A team with this name already exists",
        field="name",
        value=name,
        code=ErrorCode.DUPLICATE_VALUE,
    )


# ── Lookups ──────────────────────────────────────────────────────────

async def get_active_team(db: AsyncSession, team_id: str) -> Team:
    with translate_storage_errors("select", "teams"):
        result = await db.execute(
            select(Team).where(Team.id == team_id, Team.deleted_at.is_(None))
        )
        team = result.scalar_one_or_none()
    if team is None:
        raise ValidationError(
            "Team not found", field="team_id", value=team_id, code=ErrorCode.NOT_FOUND
        )
    return team


async def _get_membership(db: AsyncSession, team_id: str, user_id: str) -> Optional[TeamMember]:
    """Membership row in any state, including soft-deleted."""
    result = await db.execute(
        select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def _ensure_name_free(db: AsyncSession, name: str, exclude_id: Optional[str] = None) -> None:
    stmt = select(Team.id).where(Team.name == name, Team.deleted_at.is_(None))
    if exclude_id:
        stmt = stmt.where(Team.id != exclude_id)
    with translate_storage_errors("select", "teams"):
        result = await db.execute(stmt.limit(1))
        taken = result.first() is not None
    if taken:
        raise _duplicate_name(name)


async def _flush_team(db: AsyncSession, team: Team, operation: str) -> Team:
    try:
        with translate_storage_errors(operation, "teams"):
            await db.flush()
            await db.refresh(team)
    except StorageError as e:
        if e.unique_violation:
            raise _duplicate_name(team.name) from e
        raise
    return team


# ── Team lead ────────────────────────────────────────────────────────

async def assign_team_lead(
    db: AsyncSession,
    team_id: str,
    user_id: str,
    actor: AuthenticatedUser,
) -> None:
    """
    Make user_id the lead of team_id.

    Demotes every other active lead, then upserts the target's membership
    as lead. The two steps are separate statements: a failure between them
    can leave the team without a lead until this is called again.
    Re-running with the same target converges to the same state.
    """
    logger.debug("Assigning lead of team %s to %s", team_id, user_id)
    await require_role(db, actor, "team_manager")
    await get_active_team(db, team_id)

    with translate_storage_errors("update", "team_members"):
        result = await db.execute(
            select(TeamMember).where(
                TeamMember.team_id == team_id,
                TeamMember.role == "lead",
                TeamMember.user_id != user_id,
                TeamMember.deleted_at.is_(None),
            )
        )
        for current in result.scalars().all():
            current.role = "member"
            logger.info("Demoted %s to member of team %s", current.user_id, team_id)
        await db.flush()

    with translate_storage_errors("upsert", "team_members"):
        membership = await _get_membership(db, team_id, user_id)
        if membership is None:
            db.add(TeamMember(team_id=team_id, user_id=user_id, role="lead"))
        else:
            if membership.deleted_at is not None:
                membership.deleted_at = None
                membership.joined_at = utcnow()
            membership.role = "lead"
        await db.flush()

    logger.info("Assigned %s as lead of team %s", user_id, team_id)


# ── Team CRUD ────────────────────────────────────────────────────────

async def create_team(
    db: AsyncSession,
    name: str,
    actor: AuthenticatedUser,
    description: Optional[str] = None,
) -> Team:
    await require_role(db, actor, "team_manager")
    name = _validate_team_name(name)
    description = _validate_description(description)
    await _ensure_name_free(db, name)

    team = Team(name=name, description=description)
    db.add(team)
    await _flush_team(db, team, "insert")
    logger.info("Created team %s (%s)", team.name, team.id)
    return team


async def update_team(
    db: AsyncSession,
    team_id: str,
    actor: AuthenticatedUser,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Team:
    await require_role(db, actor, "team_manager")
    team = await get_active_team(db, team_id)

    if name is not None and name != team.name:
        name = _validate_team_name(name)
        await _ensure_name_free(db, name, exclude_id=team.id)
        team.name = name
    if description is not None:
        team.description = _validate_description(description)

    return await _flush_team(db, team, "update")


async def delete_team(db: AsyncSession, team_id: str, actor: AuthenticatedUser) -> None:
    """Soft-delete a team. Admin only. Its members stop inheriting its skills."""
    await require_role(db, actor, "admin")
    team = await get_active_team(db, team_id)

    with translate_storage_errors("update", "teams"):
        team.deleted_at = utcnow()
        await db.flush()
    logger.info("Deleted team %s", team_id)


async def list_teams(db: AsyncSession, actor: AuthenticatedUser) -> list[TeamSummary]:
    """Active teams with member counts. Non-admins only see their own teams."""
    counts = (
        select(TeamMember.team_id, func.count().label("member_count"))
        .where(TeamMember.deleted_at.is_(None))
        .group_by(TeamMember.team_id)
        .subquery()
    )
    stmt = (
        select(Team.id, Team.name, func.coalesce(counts.c.member_count, 0))
        .outerjoin(counts, counts.c.team_id == Team.id)
        .where(Team.deleted_at.is_(None))
    )
    if not await is_admin(db, actor):
        stmt = stmt.where(
            Team.id.in_(
                select(TeamMember.team_id).where(
                    TeamMember.user_id == actor.user_id,
                    TeamMember.deleted_at.is_(None),
                )
            )
        )

    with translate_storage_errors("select", "teams"):
        result = await db.execute(stmt.order_by(Team.name))
        return [
            TeamSummary(team_id=team_id, name=name, member_count=int(count))
            for team_id, name, count in result.all()
        ]


# ── Membership ───────────────────────────────────────────────────────

async def add_team_member(
    db: AsyncSession,
    team_id: str,
    user_id: str,
    actor: AuthenticatedUser,
) -> None:
    """Add user as member. No-op if already active; revives a removed membership."""
    await require_role(db, actor, "team_manager")
    await get_active_team(db, team_id)

    with translate_storage_errors("upsert", "team_members"):
        membership = await _get_membership(db, team_id, user_id)
        if membership is None:
            db.add(TeamMember(team_id=team_id, user_id=user_id, role="member"))
        elif membership.deleted_at is not None:
            membership.deleted_at = None
            membership.role = "member"
            membership.joined_at = utcnow()
        else:
            logger.debug("User %s already a member of team %s", user_id, team_id)
            return
        await db.flush()
    logger.info("Added %s to team %s", user_id, team_id)


async def remove_team_member(
    db: AsyncSession,
    team_id: str,
    user_id: str,
    actor: AuthenticatedUser,
) -> None:
    """Soft-delete a membership. Removing a non-member is a no-op."""
    await require_role(db, actor, "team_manager")

    with translate_storage_errors("update", "team_members"):
        membership = await _get_membership(db, team_id, user_id)
        if membership is None or membership.deleted_at is not None:
            return
        membership.deleted_at = utcnow()
        await db.flush()
    logger.info("Removed %s from team %s", user_id, team_id)


async def get_team_members(db: AsyncSession, team_id: str) -> list[TeamMemberView]:
    """Active members, lead first, then by name."""
    with translate_storage_errors("select", "team_members"):
        result = await db.execute(
            select(TeamMember, User)
            .join(User, User.id == TeamMember.user_id)
            .where(TeamMember.team_id == team_id, TeamMember.deleted_at.is_(None))
        )
        rows = result.all()

    members = [
        TeamMemberView(
            user_id=member.user_id,
            full_name=user.full_name or "Unknown User",
            email=user.email,
            user_role=user.user_role or "agent",
            avatar_url=user.avatar_url or "",
            role=member.role,
            joined_at=member.joined_at,
        )
        for member, user in rows
    ]
    members.sort(key=lambda m: (m.role != "lead", m.full_name.lower()))
    return members
