"""
Health check endpoint with database and vault status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_db, get_optional_vault, get_run_locks
from schemas.api import HealthCheckResponse
from models.base import utcnow
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    vault=Depends(get_optional_vault),
    run_locks=Depends(get_run_locks)
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Whether ENCRYPTION_KEY is configured
    - Number of runs in progress in this process
    """
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection failed: {str(e)}")

    return HealthCheckResponse(
        status="healthy" if db_connected else "unhealthy",
        timestamp=utcnow(),
        database_connected=db_connected,
        vault_configured=vault is not None,
        runs_in_progress=run_locks.active_count,
    )
