"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from pglms.config import get_settings
from pglms.database import close_db, init_db
from pglms.gamification.ranks import get_rank_table
from pglms.gamification.router import router as gamification_router
from pglms.health.router import router as health_router
from pglms.leaderboard.router import router as leaderboard_router
from pglms.middleware import setup_middleware
from pglms.redis_client import close_redis, init_redis

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    # Fail fast on a malformed rank table instead of on the first request.
    tiers = get_rank_table()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    logger.info("startup_complete", rank_tiers=len(tiers), cache=bool(settings.redis_url))

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Pixel Galaxy Academy Gamification API",
        description="XP ledger, levels, streaks and leaderboards for the Pixel Galaxy learning platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)
    app.include_router(leaderboard_router)

    return app


app = create_app()
