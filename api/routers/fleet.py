"""
Fleet status endpoint.

GET /fleet/status → per-target queue depth, job counts and online workers,
                    plus every registered worker

A worker counts as online when its registry row was touched within
WORKER_ONLINE_TIMEOUT. This is informational only; leases are what decide
whether a worker still owns a job.
"""

from datetime import timedelta

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_redis
from api.schemas.fleet import FleetStatus, TargetStatus, WorkerStatus
from broker.redis_queue import queue_key
from config.settings import settings
from models.base import utcnow
from models.enums import JobStatus, LEASED_STATUSES
from models.job import Job
from models.worker import Worker

router = APIRouter(prefix="/fleet", tags=["fleet"])


@router.get("/status", response_model=FleetStatus)
async def fleet_status(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
) -> FleetStatus:
    # Job counts per (target, status) in one GROUP BY
    rows = (
        await db.execute(
            select(Job.target, Job.status, func.count(Job.id)).group_by(Job.target, Job.status)
        )
    ).all()
    counts: dict[tuple[str, str], int] = {(t, s): n for t, s, n in rows}

    workers = (
        await db.execute(
            select(Worker).order_by(Worker.target, Worker.worker_id).execution_options(populate_existing=True)
        )
    ).scalars().all()

    cutoff = utcnow() - timedelta(seconds=settings.WORKER_ONLINE_TIMEOUT)
    worker_rows = [
        WorkerStatus(
            worker_id=w.worker_id,
            hostname=w.hostname,
            target=w.target,
            pid=w.pid,
            git_commit=w.git_commit,
            memory_bytes=w.memory_bytes,
            logical_cores=w.logical_cores,
            current_job_id=w.current_job_id,
            registered_at=w.registered_at,
            last_heartbeat_at=w.last_heartbeat_at,
            online=w.last_heartbeat_at >= cutoff,
        )
        for w in workers
    ]

    target_rows = []
    for target in settings.KNOWN_TARGETS:
        target_rows.append(TargetStatus(
            target=target,
            queue_depth=await redis.llen(queue_key(target)),
            queued=counts.get((target, JobStatus.QUEUED.value), 0),
            running=sum(counts.get((target, s.value), 0) for s in LEASED_STATUSES),
            workers_online=sum(1 for w in worker_rows if w.target == target and w.online),
        ))

    return FleetStatus(targets=target_rows, workers=worker_rows)
