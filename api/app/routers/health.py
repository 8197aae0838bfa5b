import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.redis import get_redis

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {"status": "ok", "service": "bizrent-api", "environment": settings.environment}


@router.get("/health/ready")
async def health_ready(db: AsyncSession = Depends(get_db)):
    """Readiness: the database backs every request, Redis backs login and token revocation."""
    checks: dict[str, str] = {}
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except SQLAlchemyError:
        logger.exception("Readiness check: database unavailable")
        checks["database"] = "unavailable"
    try:
        await get_redis().ping()
        checks["redis"] = "connected"
    except (RedisError, OSError):
        logger.exception("Readiness check: redis unavailable")
        checks["redis"] = "unavailable"

    ready = all(v == "connected" for v in checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ok" if ready else "degraded", **checks},
    )
