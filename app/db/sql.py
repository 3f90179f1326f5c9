# app/db/sql.py
from __future__ import annotations

import logging
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.core.logging import request_id_var
from app.db.base import Base

logger = logging.getLogger(__name__)


def build_engine(dsn: str, **overrides) -> AsyncEngine:
    """
    Create the async engine. Pool sizing only applies to server databases;
    SQLite (used by the test-suite) manages its own pool.
    """
    options: dict = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    if make_url(dsn).get_backend_name() != "sqlite":
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
        )
    options.update(overrides)
    return create_async_engine(dsn, **options)


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        expire_on_commit=False,
        autoflush=False,
        class_=AsyncSession,
    )


engine = build_engine(settings.SQL_DSN)
AsyncSessionLocal = build_sessionmaker(engine)


async def get_session() -> AsyncIterator[AsyncSession]:
    """
    Provide a DB session (one transaction) for each request.
    Commit when the handler returns, rollback on any exception.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            await session.rollback()
            logger.warning(
                "Transaction rolled back (request_id=%s): %s",
                request_id_var.get(),
                exc.__class__.__name__,
            )
            raise


async def ping_db() -> bool:
    async with AsyncSessionLocal() as session:
        await session.execute(text("SELECT 1"))
        return True


async def init_models(bind: AsyncEngine | None = None, *, drop: bool = False) -> None:
    """
    Create (optionally drop first) every table registered on Base.metadata.
    """
    # Import all models so they get registered
    from app.modules.providers import models as _providers  # noqa: F401
    from app.modules.availability import models as _availability  # noqa: F401
    from app.modules.slots import models as _slots  # noqa: F401

    async with (bind or engine).begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
