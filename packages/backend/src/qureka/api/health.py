"""Health check endpoint.

Learn: Reports the two stores the service depends on. The database
check doubles as a session count: it counts refresh tokens that have
not yet expired, i.e. sessions that can still be refreshed. Redis is
only needed for rate limiting, so a missing Redis degrades the status
but the service keeps answering.
"""

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qureka import __version__
from qureka.cache import get_redis
from qureka.db.engine import get_db
from qureka.db.models import RefreshToken, utcnow

router = APIRouter()


async def _redis_status() -> str:
    try:
        redis = get_redis()
    except RuntimeError:
        return "not connected"
    try:
        await redis.ping()
    except RedisError as e:
        return f"error: {e}"
    return "ok"


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    checks = {"server": "ok", "version": __version__}

    try:
        result = await db.execute(
            select(func.count())
            .select_from(RefreshToken)
            .where(RefreshToken.expires_at > utcnow())
        )
        checks["live_sessions"] = result.scalar_one()
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        checks["database"] = f"error: {e}"

    checks["redis"] = await _redis_status()

    healthy = checks["database"] == "ok" and checks["redis"] == "ok"
    return {"status": "healthy" if healthy else "degraded", **checks}
