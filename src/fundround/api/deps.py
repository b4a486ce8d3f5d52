"""FastAPI dependency injection for sessions, repository, settings, and event bus."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from fundround.config import Settings
from fundround.core.event_bus import EventBus
from fundround.db.engine import create_session_factory
from fundround.db.repository import Repository


async def get_engine(request: Request) -> AsyncEngine:
    """Get the database engine from app state."""
    return request.app.state.engine


async def get_session(
    engine: Annotated[AsyncEngine, Depends(get_engine)],
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session; commit on success, roll back on error."""
    factory = create_session_factory(engine)
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:  # rollback, then re-raise
            await session.rollback()
            raise


async def get_repo(session: Annotated[AsyncSession, Depends(get_session)]) -> Repository:
    return Repository(session)


async def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


RepoDep = Annotated[Repository, Depends(get_repo)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
EventBusDep = Annotated[EventBus, Depends(get_event_bus)]
