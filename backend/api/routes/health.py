"""Health check endpoint.

Mounted at /api/health (load balancers) and /api/v1/health.
"""

from fastapi import APIRouter, HTTPException, status
import logging

from api.schemas.common import HealthResponse
from app.config import get_settings
import db.database as database

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> dict[str, str]:
    """
    Health check with database ping.
    Returns 503 if the database is unreachable.
    """
    settings = get_settings()

    try:
        await database.ping()
        db_status = "ok"
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        db_status = "unavailable"

    if db_status != "ok":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "database": db_status},
        )

    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "database": db_status,
    }
