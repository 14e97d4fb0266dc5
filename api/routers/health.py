"""
Health check endpoint.

Checks database and Redis connectivity. Load balancers and front-end bots
hit this before submitting builds.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from redis.asyncio import Redis

from api.dependencies import get_db, get_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
) -> dict:
    """Check that the database and Redis are reachable."""
    # Test the database: run a trivial query
    await db.execute(text("SELECT 1"))

    # Test Redis: ping-pong
    await redis.ping()

    return {"status": "healthy", "database": "ok", "redis": "ok"}
