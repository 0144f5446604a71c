import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kbchat.api.deps import get_db

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check(db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    """Health check endpoint that verifies database connection."""
    try:
        await db.execute(text("SELECT 1"))
        db_status = "connected"
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "disconnected"

    return {
        "status": "healthy",
        "database": db_status,
    }
