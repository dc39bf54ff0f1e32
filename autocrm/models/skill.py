"""
Skill catalog and entity-to-skill assignment links.

Skill.name is the normalized natural key. EntitySkill rows are never hard
deleted by the engine: removal sets deleted_at, and at most one active link
may exist per (entity_id, entity_type, skill_id).
"""

from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from .base import RecordBase, new_uuid, utcnow

ENTITY_TYPES = ("team", "agent")


class Skill(RecordBase):
    __tablename__ = "skills"

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=True)
    created_by: Mapped[str] = mapped_column(String, nullable=True)


class EntitySkill(Base):
    __tablename__ = "entity_skills"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_uuid)
    entity_id: Mapped[str] = mapped_column(String, nullable=False)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)  # team, agent
    skill_id: Mapped[str] = mapped_column(
        String, ForeignKey("skills.id", ondelete="CASCADE"), nullable=False, index=True
    )
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    added_by: Mapped[str] = mapped_column(String, nullable=True)
    deleted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    skill: Mapped["Skill"] = relationship()

    __table_args__ = (
        Index("ix_entity_skills_entity", "entity_type", "entity_id"),
        Index(
            "uq_entity_skills_active",
            "entity_id",
            "entity_type",
            "skill_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )
