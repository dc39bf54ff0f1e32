"""
Role checks for privileged team and skill operations.

admin        → token role "admin" or users.user_role == "admin"
team_manager → admin, or an active lead of any active team
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.errors import AuthorizationError, translate_storage_errors
from ..models.team import Team, TeamMember
from ..models.user import User

logger = logging.getLogger(__name__)

ROLES = ("team_manager", "admin")


async def is_admin(db: AsyncSession, actor: AuthenticatedUser) -> bool:
    if "admin" in actor.roles:
        return True
    with translate_storage_errors("select", "users"):
        result = await db.execute(select(User.user_role).where(User.id == actor.user_id))
        return result.scalar_one_or_none() == "admin"


async def is_team_lead(db: AsyncSession, user_id: str) -> bool:
    with translate_storage_errors("select", "team_members"):
        result = await db.execute(
            select(TeamMember.team_id)
            .join(Team, Team.id == TeamMember.team_id)
            .where(
                TeamMember.user_id == user_id,
                TeamMember.role == "lead",
                TeamMember.deleted_at.is_(None),
                Team.deleted_at.is_(None),
            )
            .limit(1)
        )
        return result.first() is not None


async def require_role(db: AsyncSession, actor: AuthenticatedUser, required_role: str) -> None:
    """Raise AuthorizationError unless actor holds required_role."""
    if required_role not in ROLES:
        raise ValueError(f"Unknown role: {required_role}")

    if await is_admin(db, actor):
        return
    if required_role == "team_manager" and await is_team_lead(db, actor.user_id):
        return

    logger.info("Denied %s role to user %s", required_role, actor.user_id)
    if required_role == "admin":
        raise AuthorizationError("Insufficient permissions: Must be an admin", required_role)
    raise AuthorizationError(
        "Insufficient permissions: Must be a team lead or admin", required_role
    )
