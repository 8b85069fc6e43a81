"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from datetime import datetime
import logging

from docmaker.database import get_db
from docmaker.models.schemas import HealthCheckResponse
from docmaker.services.gemini_client import GeminiClient

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with status of database and Gemini
    """
    # Check database connection
    db_status = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "error"

    # Check Gemini API key
    gemini_status = "ok"
    try:
        if not await GeminiClient().ping():
            gemini_status = "error"
    except Exception as e:
        logger.error(f"Gemini health check failed: {e}")
        gemini_status = "error"

    overall_status = "healthy" if db_status == "ok" and gemini_status == "ok" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        gemini=gemini_status,
        timestamp=datetime.utcnow()
    )
