"""
Health check endpoints.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
import redis.asyncio as redis

from config import settings
from database import engine

router = APIRouter()
logger = logging.getLogger(__name__)


async def _database_status() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return "up"
    except Exception as exc:
        logger.warning("Database health probe failed: %s", exc)
        return f"down: {exc}"


async def _redis_status() -> str:
    client = redis.from_url(settings.REDIS_URL)
    try:
        await client.ping()
        return "up"
    except Exception as exc:
        logger.warning("Redis health probe failed: %s", exc)
        return f"down: {exc}"
    finally:
        await client.aclose()


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    The database is required; Redis only backs rate limiting.
    """
    database = await _database_status()
    redis_state = await _redis_status()
    return {
        "status": "healthy" if database == "up" and redis_state == "up" else "degraded",
        "api": "up",
        "database": database,
        "redis": redis_state,
    }


@router.get("/health/ready")
async def readiness_check():
    """Kubernetes-style readiness probe."""
    database = await _database_status()
    if database != "up":
        return JSONResponse(
            status_code=503,
            content={"ready": False, "database": database},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
