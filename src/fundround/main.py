"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fundround.api.funding_rounds import router as funding_rounds_router
from fundround.api.proposals import router as proposals_router
from fundround.config import Settings
from fundround.core.event_bus import EventBus
from fundround.db.engine import create_engine, create_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: create engine and tables. Shutdown: dispose the engine."""
    settings: Settings = app.state.settings
    engine = create_engine(settings.database_url)
    await create_tables(engine)
    app.state.engine = engine
    app.state.event_bus = EventBus()
    logger.info(
        "fundround_started env=%s reviewer_threshold=%d",
        settings.fundround_env,
        settings.consideration_reviewer_approval_threshold,
    )

    yield

    await engine.dispose()
    logger.info("fundround_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the funding round FastAPI application."""
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.fundround_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Funding Rounds",
        version="0.1.0",
        description="Funding round lifecycle and ranked fund allocation",
        docs_url="/docs" if settings.fundround_env != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.include_router(funding_rounds_router)
    app.include_router(proposals_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "env": settings.fundround_env}

    return app


app = create_app()
