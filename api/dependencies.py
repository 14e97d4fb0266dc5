"""
FastAPI dependency injection.

- get_db: async session for read-only listing and statistics
- get_redis: async Redis client for health and queue-depth reads
- get_dispatcher: the sync Dispatcher that every state change goes through

Endpoints declare what they need (`db: AsyncSession = Depends(get_db)`) and
tests swap any of them via app.dependency_overrides.
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from redis.asyncio import Redis

from dispatcher.dispatcher import Dispatcher
from models.base import AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yields an async database session, auto-closes when the request ends."""
    async with AsyncSessionLocal() as session:
        yield session


async def get_redis(request: Request) -> Redis:
    """Returns the Redis client stored on the app during startup."""
    return request.app.state.redis


async def get_dispatcher(request: Request) -> Dispatcher:
    """Returns the Dispatcher built during startup."""
    return request.app.state.dispatcher
