"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter, Depends

from ..core.dependencies import get_user

router = APIRouter()


# ── Health (no auth) ─────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "autocrm"}


# ── Auth config (no auth) ───────────────────────────────────────────

@router.get("/auth/config")
async def auth_config():
    from ..core.config import get_settings
    from ..core.flags import get_flags

    flags = get_flags()
    if not flags.use_auth0:
        return {"auth_enabled": False, "message": "Dev mode, no auth required"}

    settings = get_settings()
    return {
        "auth_enabled": True,
        "domain": settings.auth0_domain,
        "audience": settings.auth0_audience,
    }


# ── V1 routes (auth required) ───────────────────────────────────────

from .skills import entity_skills_router, skills_router
from .teams import teams_router
from .users import users_router

router.include_router(skills_router, prefix="/v1", dependencies=[Depends(get_user)])
router.include_router(entity_skills_router, prefix="/v1", dependencies=[Depends(get_user)])
router.include_router(teams_router, prefix="/v1", dependencies=[Depends(get_user)])
router.include_router(users_router, prefix="/v1", dependencies=[Depends(get_user)])
