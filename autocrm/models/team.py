"""
Teams and team memberships.

Both are soft-deleted via deleted_at. A membership row is unique per
(team, user); removing a member tombstones the row and re-adding revives it.
"""

from datetime import datetime

from sqlalchemy import String, Text, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base
from .base import RecordBase, utcnow

TEAM_MEMBER_ROLES = ("member", "lead")


class Team(RecordBase):
    __tablename__ = "teams"

    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # Active team names are unique; deleted teams free their name
        Index(
            "uq_teams_active_name",
            "name",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )


class TeamMember(Base):
    __tablename__ = "team_members"

    team_id: Mapped[str] = mapped_column(
        String, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    role: Mapped[str] = mapped_column(String, nullable=False, default="member")  # member, lead
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    deleted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
