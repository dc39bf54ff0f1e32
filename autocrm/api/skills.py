"""
Skills API.

GET    /v1/skills                                           — List or search the catalog
POST   /v1/skills                                           — Create a skill
POST   /v1/skills/resolve                                   — Get-or-create skills by name
PATCH  /v1/skills/{skill_id}                                — Update a skill
DELETE /v1/skills/{skill_id}                                — Delete a skill (admin)
GET    /v1/entities/{entity_type}/{entity_id}/skills        — Direct skills of an entity
POST   /v1/entities/{entity_type}/{entity_id}/skills        — Add skills by name
POST   /v1/entities/{entity_type}/{entity_id}/skills/remove — Remove skills by name
POST   /v1/entities/{entity_type}/skills/bulk               — Bulk assign skill ids
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, get_user
from ..core.retry import retry_async
from ..models.skill import Skill
from ..services import realtime
from ..services.skills import (
    add_skills_to_entity,
    bulk_assign_skills,
    create_skill,
    delete_skill,
    get_entity_skills,
    get_or_create_skills,
    list_skills,
    remove_skills_from_entity,
    search_skills,
    update_skill,
)
from .common import commit

logger = logging.getLogger(__name__)

skills_router = APIRouter(prefix="/skills", tags=["skills"])
entity_skills_router = APIRouter(prefix="/entities", tags=["skills"])


class SkillOut(BaseModel):
    id: str
    name: str
    category: Optional[str] = None
    created_by: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


class SkillCreateRequest(BaseModel):
    name: str
    category: Optional[str] = None


class SkillUpdateRequest(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None


class SkillNamesRequest(BaseModel):
    names: list[str]


class BulkAssignRequest(BaseModel):
    assignments: dict[str, list[str]]  # entity_id → skill ids


class BulkAssignResponse(BaseModel):
    created: int


def _skill_out(s: Skill) -> SkillOut:
    return SkillOut(
        id=s.id,
        name=s.name,
        category=s.category,
        created_by=s.created_by,
        created_at=s.created_at.isoformat() if s.created_at else "",
        updated_at=s.updated_at.isoformat() if s.updated_at else "",
    )


# ── Catalog ──────────────────────────────────────────────────────────

@skills_router.get("", response_model=list[SkillOut])
async def get_skills(
    q: str = "",
    category: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Full catalog, or a filtered search when q/category are given."""
    if q or category:
        skills = await search_skills(db, q, category)
    else:
        skills = await list_skills(db)
    return [_skill_out(s) for s in skills]


@skills_router.post("", response_model=SkillOut, status_code=201)
async def post_skill(
    request: SkillCreateRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    skill = await create_skill(db, request.name, request.category, created_by=user.user_id)
    await commit(db, "insert", "skills")
    return _skill_out(skill)


@skills_router.post("/resolve", response_model=list[SkillOut])
async def resolve_skills(
    request: SkillNamesRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    """Get-or-create one canonical skill per distinct name."""
    async def _resolve():
        skills = await get_or_create_skills(db, request.names, created_by=user.user_id)
        await commit(db, "upsert", "skills")
        return skills

    skills = await retry_async(_resolve, on_retry=db.rollback)
    return [_skill_out(s) for s in skills]


@skills_router.patch("/{skill_id}", response_model=SkillOut)
async def patch_skill(
    skill_id: str,
    request: SkillUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    skill = await update_skill(db, skill_id, name=request.name, category=request.category)
    await commit(db, "update", "skills")
    return _skill_out(skill)


@skills_router.delete("/{skill_id}")
async def remove_skill(
    skill_id: str,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    deleted = await delete_skill(db, skill_id, user)
    await commit(db, "delete", "skills")
    return {"deleted": deleted, "skill_id": skill_id}


# ── Entity assignments ───────────────────────────────────────────────

@entity_skills_router.get("/{entity_type}/{entity_id}/skills", response_model=list[SkillOut])
async def get_skills_for_entity(
    entity_type: str,
    entity_id: str,
    db: AsyncSession = Depends(get_db),
):
    skills = await get_entity_skills(db, entity_id, entity_type)
    return [_skill_out(s) for s in skills]


@entity_skills_router.post("/{entity_type}/{entity_id}/skills", response_model=list[SkillOut])
async def add_skills_for_entity(
    entity_type: str,
    entity_id: str,
    request: SkillNamesRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    """Assign skills by name. Returns the entity's direct skills afterwards."""
    async def _add():
        await add_skills_to_entity(db, entity_id, entity_type, request.names, added_by=user.user_id)
        await commit(db, "insert", "entity_skills")

    await retry_async(_add, on_retry=db.rollback)
    await realtime.entity_skills_changed(entity_type, entity_id, "added")

    skills = await get_entity_skills(db, entity_id, entity_type)
    return [_skill_out(s) for s in skills]


@entity_skills_router.post(
    "/{entity_type}/{entity_id}/skills/remove", response_model=list[SkillOut]
)
async def remove_skills_for_entity(
    entity_type: str,
    entity_id: str,
    request: SkillNamesRequest,
    db: AsyncSession = Depends(get_db),
):
    """Unassign skills by name. Returns the entity's direct skills afterwards."""
    async def _remove():
        await remove_skills_from_entity(db, entity_id, entity_type, request.names)
        await commit(db, "update", "entity_skills")

    await retry_async(_remove, on_retry=db.rollback)
    await realtime.entity_skills_changed(entity_type, entity_id, "removed")

    skills = await get_entity_skills(db, entity_id, entity_type)
    return [_skill_out(s) for s in skills]


@entity_skills_router.post("/{entity_type}/skills/bulk", response_model=BulkAssignResponse)
async def bulk_assign(
    entity_type: str,
    request: BulkAssignRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    async def _assign():
        created = await bulk_assign_skills(
            db, entity_type, request.assignments, added_by=user.user_id
        )
        await commit(db, "upsert", "entity_skills")
        return created

    created = await retry_async(_assign, on_retry=db.rollback)
    for entity_id in request.assignments:
        await realtime.entity_skills_changed(entity_type, entity_id, "added")
    return BulkAssignResponse(created=created)
