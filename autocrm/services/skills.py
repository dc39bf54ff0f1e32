"""
Skill store operations.

  - get_or_create_skills: conflict-tolerant bulk upsert keyed on name
  - get_entity_skills: skills joined through active assignment links
  - add/remove_skills_from_entity: reconcile links against a set of names
  - bulk_assign_skills: insert missing links for many entities at once
  - catalog CRUD (list, search, create, update, delete)

Every write is idempotent and safe to retry. Links are soft-deleted;
removing an assignment never touches the Skill row.
"""

import logging
from typing import Iterable, Mapping, Optional

from sqlalchemy import select, update, delete as sql_delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.database import insert_ignoring_conflicts
from ..core.errors import (
    ErrorCode,
    StorageError,
    ValidationError,
    translate_storage_errors,
)
from ..models.base import new_uuid, utcnow
from ..models.skill import ENTITY_TYPES, EntitySkill, Skill
from .permissions import require_role
from .skill_names import normalize_skill_name, normalize_skill_names, validate_skill_name

logger = logging.getLogger(__name__)

MAX_CATEGORY_LENGTH = 50


def validate_entity_type(entity_type: str) -> str:
    if entity_type not in ENTITY_TYPES:
        raise ValidationError(
            "Invalid entity type",
            field="entity_type",
            value=entity_type,
            code=ErrorCode.INVALID_VALUE,
        )
    return entity_type


def _validate_category(category: Optional[str]) -> Optional[str]:
    if category is None:
        return None
    if not isinstance(category, str) or not 1 <= len(category) <= MAX_CATEGORY_LENGTH:
        raise ValidationError(
            f"Category must be 1-{MAX_CATEGORY_LENGTH} characters",
            field="category",
            value=category,
        )
    return category


async def _skills_by_name(db: AsyncSession, names: Iterable[str]) -> dict[str, Skill]:
    result = await db.execute(select(Skill).where(Skill.name.in_(list(names))))
    return {s.name: s for s in result.scalars().all()}


async def _insert_ignoring_duplicates(db: AsyncSession, model, rows: list[dict], index_elements=None):
    """Insert rows, leaving any that hit a unique constraint untouched."""
    stmt = insert_ignoring_conflicts(db, model, index_elements=index_elements)
    await db.execute(stmt.values(rows))


# ── Get-or-create ────────────────────────────────────────────────────

async def get_or_create_skills(
    db: AsyncSession,
    names: Iterable[str],
    created_by: Optional[str] = None,
) -> list[Skill]:
    """
    Return the canonical Skill row for every distinct normalized name,
    creating the missing ones. Existing rows are never modified.
    """
    normalized = normalize_skill_names(names)
    if not normalized:
        return []

    logger.debug("Get-or-create skills: %s", normalized)
    with translate_storage_errors("upsert", "skills"):
        await _insert_ignoring_duplicates(
            db,
            Skill,
            [{"id": new_uuid(), "name": n, "created_by": created_by} for n in normalized],
            index_elements=["name"],
        )
        by_name = await _skills_by_name(db, normalized)

    missing = [n for n in normalized if n not in by_name]
    if missing:
        # Row security can hide rows another caller created
        logger.error("Skills not readable after upsert: %s", missing)
        raise StorageError("Skills not readable after upsert", "upsert", "skills")

    return [by_name[n] for n in normalized]


# ── Direct query ─────────────────────────────────────────────────────

async def get_entity_skills(db: AsyncSession, entity_id: str, entity_type: str) -> list[Skill]:
    """Skills directly assigned to an entity through active links, by name."""
    validate_entity_type(entity_type)
    logger.debug("Fetching skills for %s %s", entity_type, entity_id)

    with translate_storage_errors("select", "entity_skills"):
        result = await db.execute(
            select(Skill)
            .join(EntitySkill, EntitySkill.skill_id == Skill.id)
            .where(
                EntitySkill.entity_id == entity_id,
                EntitySkill.entity_type == entity_type,
                EntitySkill.deleted_at.is_(None),
            )
            .distinct()
            .order_by(Skill.name)
        )
        return list(result.scalars().all())


async def _active_skill_ids(db: AsyncSession, entity_id: str, entity_type: str) -> set[str]:
    result = await db.execute(
        select(EntitySkill.skill_id).where(
            EntitySkill.entity_id == entity_id,
            EntitySkill.entity_type == entity_type,
            EntitySkill.deleted_at.is_(None),
        )
    )
    return set(result.scalars().all())


def _link_row(entity_id: str, entity_type: str, skill_id: str, added_by: Optional[str]) -> dict:
    return {
        "id": new_uuid(),
        "entity_id": entity_id,
        "entity_type": entity_type,
        "skill_id": skill_id,
        "added_at": utcnow(),
        "added_by": added_by,
        "deleted_at": None,
    }


# ── Reconciling add / remove ─────────────────────────────────────────

async def add_skills_to_entity(
    db: AsyncSession,
    entity_id: str,
    entity_type: str,
    skill_names: Iterable[str],
    added_by: Optional[str] = None,
) -> None:
    """Assign skills by name. Already-active assignments are left alone."""
    validate_entity_type(entity_type)
    names = normalize_skill_names(skill_names)
    logger.debug("Adding skills to %s %s: %s", entity_type, entity_id, names)
    if not names:
        return

    skills = await get_or_create_skills(db, names, created_by=added_by)

    with translate_storage_errors("insert", "entity_skills"):
        existing = await _active_skill_ids(db, entity_id, entity_type)
        to_add = [s.id for s in skills if s.id not in existing]
        logger.debug("Skill links existing=%s to_add=%s", sorted(existing), to_add)

        if to_add:
            await _insert_ignoring_duplicates(
                db,
                EntitySkill,
                [_link_row(entity_id, entity_type, sid, added_by) for sid in to_add],
            )
            await db.flush()

    if to_add:
        logger.info("Added %d skill(s) to %s %s", len(to_add), entity_type, entity_id)


async def remove_skills_from_entity(
    db: AsyncSession,
    entity_id: str,
    entity_type: str,
    skill_names: Iterable[str],
) -> None:
    """Soft-delete active assignments by name. Unknown names are ignored."""
    validate_entity_type(entity_type)
    names = set()
    for raw in skill_names:
        if not isinstance(raw, str):
            raise ValidationError("Skill name must be a string", field="name", value=raw)
        name = normalize_skill_name(raw)
        if name:
            names.add(name)
    logger.debug("Removing skills from %s %s: %s", entity_type, entity_id, sorted(names))
    if not names:
        return

    with translate_storage_errors("select", "skills"):
        result = await db.execute(select(Skill.id).where(Skill.name.in_(names)))
        skill_ids = list(result.scalars().all())

    if not skill_ids:
        logger.debug("No matching skills to remove")
        return

    with translate_storage_errors("update", "entity_skills"):
        result = await db.execute(
            update(EntitySkill)
            .where(
                EntitySkill.entity_id == entity_id,
                EntitySkill.entity_type == entity_type,
                EntitySkill.skill_id.in_(skill_ids),
                EntitySkill.deleted_at.is_(None),
            )
            .values(deleted_at=utcnow())
        )

    if result.rowcount:
        logger.info("Removed %d skill(s) from %s %s", result.rowcount, entity_type, entity_id)


async def bulk_assign_skills(
    db: AsyncSession,
    entity_type: str,
    assignments: Mapping[str, Iterable[str]],
    added_by: Optional[str] = None,
) -> int:
    """
    Ensure each entity_id has an active link to each of its skill ids.
    Returns the number of links created.
    """
    validate_entity_type(entity_type)
    wanted = [
        (entity_id, skill_id)
        for entity_id, skill_ids in assignments.items()
        for skill_id in dict.fromkeys(skill_ids)
    ]
    if not wanted:
        return 0

    with translate_storage_errors("upsert", "entity_skills"):
        result = await db.execute(
            select(EntitySkill.entity_id, EntitySkill.skill_id).where(
                EntitySkill.entity_type == entity_type,
                EntitySkill.entity_id.in_(list(assignments)),
                EntitySkill.deleted_at.is_(None),
            )
        )
        active = {tuple(row) for row in result.all()}
        missing = [pair for pair in wanted if pair not in active]

        if missing:
            await _insert_ignoring_duplicates(
                db,
                EntitySkill,
                [_link_row(eid, entity_type, sid, added_by) for eid, sid in missing],
            )
            await db.flush()

    logger.info("Bulk assigned %d %s skill link(s)", len(missing), entity_type)
    return len(missing)


# ── Catalog ──────────────────────────────────────────────────────────

async def list_skills(db: AsyncSession) -> list[Skill]:
    with translate_storage_errors("select", "skills"):
        result = await db.execute(select(Skill).order_by(Skill.name))
        return list(result.scalars().all())


async def search_skills(
    db: AsyncSession,
    query: str = "",
    category: Optional[str] = None,
) -> list[Skill]:
    """Substring match on the normalized query, optionally within one category."""
    stmt = select(Skill)
    term = normalize_skill_name(query or "")
    if term:
        stmt = stmt.where(Skill.name.contains(term, autoescape=True))
    if category:
        stmt = stmt.where(Skill.category == category)

    with translate_storage_errors("select", "skills"):
        result = await db.execute(stmt.order_by(Skill.name))
        return list(result.scalars().all())


async def get_skill(db: AsyncSession, skill_id: str) -> Skill:
    with translate_storage_errors("select", "skills"):
        skill = await db.get(Skill, skill_id)
    if skill is None:
        raise ValidationError(
            "Skill not found", field="skill_id", value=skill_id, code=ErrorCode.NOT_FOUND
        )
    return skill


async def _ensure_name_free(db: AsyncSession, name: str) -> None:
    with translate_storage_errors("select", "skills"):
        taken = await _skills_by_name(db, [name])
    if taken:
        raise ValidationError(
            "A skill with this name already exists",
            field="name",
            value=name,
            code=ErrorCode.DUPLICATE_VALUE,
        )


async def _flush_skill(db: AsyncSession, skill: Skill, operation: str) -> Skill:
    try:
        with translate_storage_errors(operation, "skills"):
            await db.flush()
            await db.refresh(skill)
    except StorageError as e:
        if e.unique_violation:
            raise ValidationError(
                "A skill with this name already exists",
                field="name",
                value=skill.name,
                code=ErrorCode.DUPLICATE_VALUE,
            ) from e
        raise
    return skill


async def create_skill(
    db: AsyncSession,
    name: str,
    category: Optional[str] = None,
    created_by: Optional[str] = None,
) -> Skill:
    normalized = validate_skill_name(name)
    category = _validate_category(category)
    await _ensure_name_free(db, normalized)

    skill = Skill(name=normalized, category=category, created_by=created_by)
    db.add(skill)
    await _flush_skill(db, skill, "insert")
    logger.info("Created skill %s (%s)", skill.name, skill.id)
    return skill


async def update_skill(
    db: AsyncSession,
    skill_id: str,
    name: Optional[str] = None,
    category: Optional[str] = None,
) -> Skill:
    """Rename and/or recategorize a skill. None leaves a field unchanged."""
    skill = await get_skill(db, skill_id)

    if name is not None:
        normalized = validate_skill_name(name)
        if normalized != skill.name:
            await _ensure_name_free(db, normalized)
            skill.name = normalized
    if category is not None:
        skill.category = _validate_category(category)

    return await _flush_skill(db, skill, "update")


async def delete_skill(db: AsyncSession, skill_id: str, actor: AuthenticatedUser) -> bool:
    """Remove a skill from the catalog along with every assignment link. Admin only."""
    await require_role(db, actor, "admin")

    with translate_storage_errors("delete", "skills"):
        await db.execute(sql_delete(EntitySkill).where(EntitySkill.skill_id == skill_id))
        result = await db.execute(sql_delete(Skill).where(Skill.id == skill_id))

    deleted = bool(result.rowcount)
    if deleted:
        logger.info("Deleted skill %s", skill_id)
    return deleted
