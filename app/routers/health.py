# app/routers/health.py
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.db.sql import get_session

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/health")
async def health_root():
    return {"status": "ok", "env": settings.APP_ENV}

@router.get("/health/db")
async def health_db(session: AsyncSession = Depends(get_session)):
    """
    Validates database connectivity with SELECT 1 and reports the dialect.
    Returns 503 if no connectivity (useful for readiness/liveness checks).
    """
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "ok", "database": session.get_bind().dialect.name}
    except SQLAlchemyError as exc:
        logger.error("Database health check failed: %s", exc.__class__.__name__)
        # Don't expose internal details
        raise HTTPException(status_code=503, detail="database_unavailable") from exc
