"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pointsbook.admin.router import router as admin_router
from pointsbook.auth.router import router as auth_router
from pointsbook.config import get_settings
from pointsbook.database import close_db, get_session_factory, init_db
from pointsbook.health.router import router as health_router
from pointsbook.middleware import setup_middleware
from pointsbook.redis_client import close_redis, init_redis
from pointsbook.rounds.router import router as rounds_router
from pointsbook.users.router import router as users_router
from pointsbook.users.service import ensure_superadmin

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.redis_url:
        await init_redis(settings.redis_url)
    else:
        logger.info("Redis URL not set; event broadcast disabled")

    if settings.bootstrap_superadmin_password:
        await ensure_superadmin(
            get_session_factory(),
            settings.bootstrap_superadmin_key,
            settings.bootstrap_superadmin_password,
        )

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Pointsbook API",
        description="Points wallet ledger with admin allowances and timed result rounds",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(admin_router)
    app.include_router(rounds_router)

    return app


app = create_app()
