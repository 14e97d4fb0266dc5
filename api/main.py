"""
FastAPI application factory — the submission interface for chat and
source-control front-ends.

This file:
1. Creates the FastAPI app
2. Runs startup logic (create DB tables, connect to Redis, build the Dispatcher)
3. Registers all routers (jobs, pipelines, fleet, health)
4. Runs shutdown logic (close connections)

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis import Redis
from redis.asyncio import Redis as AsyncRedis

from api.routers import fleet, health, jobs, pipelines
from broker.notifier import RedisNotifier
from broker.redis_queue import RedisJobQueue
from config.settings import settings
from dispatcher.dispatcher import Dispatcher
from models.base import SyncSessionLocal, async_engine
from models.tables import Base
from store.job_store import JobStore

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Runs on startup (before yield) and shutdown (after yield).

    Startup:
    - Creates all DB tables if they don't exist (safe to run multiple times)
    - Connects to Redis (async client for reads, sync client for the Dispatcher)
    - Builds the Dispatcher on top of the sync Job Store

    Shutdown:
    - Closes Redis connections
    - Disposes the DB engine (closes connection pool)
    """
    # ── Startup ─────────────────────────────────────────────────
    logger.info("Creating database tables...")
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.redis = AsyncRedis.from_url(settings.redis_url)
    sync_redis = Redis.from_url(settings.redis_url)
    store = JobStore(SyncSessionLocal, notifier=RedisNotifier(sync_redis))
    app.state.dispatcher = Dispatcher(store, RedisJobQueue(sync_redis))
    logger.info(f"API ready — targets: {', '.join(settings.KNOWN_TARGETS)}")

    yield

    # ── Shutdown ────────────────────────────────────────────────
    await app.state.redis.close()
    sync_redis.close()
    await async_engine.dispose()
    logger.info("API shut down")


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    app = FastAPI(
        title="Build Fleet Dispatcher",
        description="Leases package build jobs to per-architecture worker agents and tracks them to completion",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(jobs.router)
    app.include_router(pipelines.router)
    app.include_router(fleet.router)

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()
