"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import RecordBase
from .user import User
from .team import Team, TeamMember
from .skill import Skill, EntitySkill

__all__ = [
    "RecordBase",
    "User",
    "Team", "TeamMember",
    "Skill", "EntitySkill",
]
