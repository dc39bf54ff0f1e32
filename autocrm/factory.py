"""
FastAPI application factory.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import get_settings
from .core.database import init_db, close_db
from .core.errors import AuthorizationError, ErrorCode, StorageError, ValidationError
from .core.redis import close_redis
from .api.router import router

logger = logging.getLogger(__name__)


def _register_error_handlers(app: FastAPI) -> None:
    """Map engine errors to HTTP responses. Storage details stay in the logs."""

    @app.exception_handler(ValidationError)
    async def on_validation_error(request: Request, exc: ValidationError):
        status_code = 404 if exc.code == ErrorCode.NOT_FOUND else 422
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.code.value, "message": exc.message, "field": exc.field},
        )

    @app.exception_handler(AuthorizationError)
    async def on_authorization_error(request: Request, exc: AuthorizationError):
        return JSONResponse(
            status_code=403,
            content={"error": exc.code.value, "message": "Insufficient permissions"},
        )

    @app.exception_handler(StorageError)
    async def on_storage_error(request: Request, exc: StorageError):
        logger.error(
            "Storage error on %s %s (%s %s): %s",
            request.method, request.url.path, exc.operation, exc.table, exc.message,
        )
        return JSONResponse(
            status_code=503,
            content={
                "error": exc.code.value,
                "message": "Storage temporarily unavailable",
                "retryable": True,
            },
        )


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="AutoCRM",
        description="Skill aggregation engine",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins if origins != ["*"] else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Startup ──────────────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup():
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        logger.info("Starting AutoCRM (env=%s)", settings.env)

        await init_db()

        from .core.flags import get_flags
        flags = get_flags()
        logger.info("Flags: auth0=%s redis=%s", flags.use_auth0, flags.use_redis)

        logger.info("AutoCRM is ready")

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        await close_db()
        await close_redis()
        logger.info("AutoCRM shut down")

    _register_error_handlers(app)

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
