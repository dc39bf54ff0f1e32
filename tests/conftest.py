"""
Shared fixtures. Each test gets its own file-based SQLite database.
"""

import os

# Flags are read once and cached; set them before anything imports autocrm
os.environ["FF_USE_AUTH0"] = "false"
os.environ["FF_USE_REDIS"] = "false"

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from autocrm.core.auth import AuthenticatedUser
from autocrm.core.database import Base
from autocrm.models import EntitySkill, Skill, Team, TeamMember, User  # noqa: F401


ADMIN = AuthenticatedUser(user_id="admin-1", email="admin@example.com", roles=["admin"])
AGENT = AuthenticatedUser(user_id="agent-1", email="agent@example.com")


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def users(db):
    """admin-1 (admin), agent-1 and agent-2 (agents)."""
    rows = [
        User(id="admin-1", email="admin@example.com", full_name="Ada Admin", user_role="admin"),
        User(id="agent-1", email="agent@example.com", full_name="Bob Agent", user_role="agent"),
        User(id="agent-2", email="agent2@example.com", full_name="alice Agent", user_role="agent"),
    ]
    db.add_all(rows)
    await db.commit()
    return {u.id: u for u in rows}


async def make_team(db, name: str, skills=(), members=()) -> Team:
    """Insert a team directly, with optional direct skills and (user_id, role) members."""
    from autocrm.services.skills import add_skills_to_entity

    team = Team(name=name)
    db.add(team)
    await db.flush()

    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for offset, (user_id, role) in enumerate(members):
        db.add(
            TeamMember(
                team_id=team.id,
                user_id=user_id,
                role=role,
                joined_at=start + timedelta(minutes=offset),
            )
        )
    await db.flush()

    if skills:
        await add_skills_to_entity(db, team.id, "team", list(skills))
    await db.commit()
    return team


async def join(db, team: Team, user_id: str, role: str = "member", minute: int = 0) -> None:
    db.add(
        TeamMember(
            team_id=team.id,
            user_id=user_id,
            role=role,
            joined_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minute),
        )
    )
    await db.commit()
