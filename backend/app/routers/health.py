"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.config import settings
from app.database import engine
from app.utils.redis_client import get_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Liveness probe: 200 while the process is serving (no DB/Redis check)."""
    return {
        "status": "ok",
        "service": "Billflow",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
        "recurring_scheduler": settings.recurring_enabled,
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness probe: 200 only if the database and Redis answer."""
    checks = {"service": "ok", "database": "unknown", "redis": "unknown"}
    healthy = True

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {str(e)[:100]}"
        healthy = False

    try:
        client = await get_redis()
        await client.ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"error: {str(e)[:100]}"
        healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "service": "Billflow",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
