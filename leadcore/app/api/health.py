"""
MarketPro Lead Core API Health Endpoints
"""

import time
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
import structlog

from ..core.config import settings
from ..core.database import get_db
from ..services.nats_client import get_nats_client

logger = structlog.get_logger()
router = APIRouter(prefix="/health", tags=["health"])

SERVICE_NAME = "marketpro-lead-core"

# Track service start time
start_time = time.time()


@router.get("/")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": settings.version,
        "uptime_seconds": time.time() - start_time,
        "timestamp": time.time()
    }


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness check; the lead store is required, the event bus is not"""
    services = {}

    try:
        await db.execute(text("SELECT 1"))
        services["database"] = "healthy"
    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        services["database"] = "unhealthy"

    try:
        nats_client = await get_nats_client()
        services["nats"] = "healthy" if await nats_client.health_check() else "unavailable"
    except Exception as e:
        logger.warning("NATS health check failed", error=str(e))
        services["nats"] = "unavailable"

    return {
        "status": "ready" if services["database"] == "healthy" else "not_ready",
        "service": SERVICE_NAME,
        "version": settings.version,
        "uptime_seconds": time.time() - start_time,
        "services": services,
        "timestamp": time.time()
    }


@router.get("/live")
async def liveness_check():
    """Liveness check - basic service responsiveness"""
    return {
        "status": "alive",
        "service": SERVICE_NAME,
        "timestamp": time.time()
    }
