"""Health check endpoints."""
from fastapi import APIRouter, Depends
import logging

from ..core.cache import CacheManager, get_cache
from ..core.config import settings
from ..core.database import health_check_db

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

@router.get("/")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "service": "College Schedule API",
        "version": settings.app_version,
        "environment": settings.environment
    }

@router.get("/full-health")
async def full_health_check(cache: CacheManager = Depends(get_cache)):
    """Database and cache connectivity"""
    health_status = {
        "service": "healthy",
        "database": "unknown",
        "cache": "unknown"
    }

    db_healthy = await health_check_db()
    health_status["database"] = "healthy" if db_healthy else "unhealthy"

    cache_healthy = await cache.ping()
    health_status["cache"] = "healthy" if cache_healthy else "unhealthy"

    overall_status = "healthy" if all(
        status == "healthy" for status in health_status.values()
    ) else "degraded"

    if overall_status != "healthy":
        logger.warning(f"Health check degraded: {health_status}")

    return {
        "status": overall_status,
        "components": health_status
    }
