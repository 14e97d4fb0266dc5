"""
Job endpoints — the submission interface for single-target builds.

POST   /jobs/          → Submit a build for one target (persisted, then published)
GET    /jobs/          → List jobs with filtering + pagination
GET    /jobs/stats     → Job counts per status
GET    /jobs/{job_id}  → Get a single job by ID
DELETE /jobs/{job_id}  → Cancel a job that has not finished

Every state change goes through the Dispatcher and the Job Store's conditional
UPDATEs, which are synchronous, so those calls run in the threadpool. Listing
and statistics are plain reads and use the async session directly.
"""

from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from api.dependencies import get_db, get_dispatcher
from api.schemas.job import JobCreate, JobResponse, JobListResponse, JobStats
from dispatcher.dispatcher import Dispatcher
from models.job import Job
from models.enums import JobStatus
from store.errors import AlreadyTerminal, InvalidPayload, InvalidTarget, JobNotFound

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/", response_model=JobResponse, status_code=201)
async def create_job(
    job_in: JobCreate,
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> JobResponse:
    """
    Submit a build for one target.

    The job is saved with status=QUEUED and its id pushed onto the target's
    queue. If Redis is down the job is still accepted; the lease monitor
    publishes it once Redis is back.
    """
    try:
        job_id = await run_in_threadpool(
            dispatcher.submit, job_in.target, job_in.payload.model_dump(), job_in.max_attempts
        )
    except (InvalidTarget, InvalidPayload) as e:
        raise HTTPException(status_code=422, detail=str(e))

    job = await run_in_threadpool(dispatcher.query, job_id)
    return JobResponse.model_validate(job)


@router.get("/", response_model=JobListResponse)
async def list_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by job status"),
    target: Optional[str] = Query(None, description="Filter by target"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Jobs per page"),
    db: AsyncSession = Depends(get_db),
) -> JobListResponse:
    """
    List jobs with optional filtering and pagination, newest first.

    Pagination works with OFFSET/LIMIT:
    - page=1, page_size=20 → rows 0-19
    - page=2, page_size=20 → rows 20-39
    """
    conditions = []
    if status:
        conditions.append(Job.status == status.value)
    if target:
        conditions.append(Job.target == target)

    # Query 1: total count
    count_query = select(func.count(Job.id)).where(*conditions)
    total = (await db.execute(count_query)).scalar() or 0

    # Query 2: fetch page
    offset = (page - 1) * page_size
    query = (
        select(Job)
        .where(*conditions)
        .order_by(Job.created_at.desc())
        .offset(offset)
        .limit(page_size)
        .execution_options(populate_existing=True)
    )
    jobs = (await db.execute(query)).scalars().all()

    return JobListResponse(
        jobs=[JobResponse.model_validate(j) for j in jobs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/stats", response_model=JobStats)
async def get_job_stats(
    db: AsyncSession = Depends(get_db),
) -> JobStats:
    """
    Job counts per status.

    A single query using conditional aggregation (COUNT + FILTER) instead of
    one COUNT per status.
    """
    query = select(
        func.count(Job.id).label("total"),
        *[
            func.count(Job.id).filter(Job.status == s.value).label(s.value.lower())
            for s in JobStatus
        ],
    )
    row = (await db.execute(query)).one()

    return JobStats(
        total_jobs=row.total,
        queued=row.queued,
        claimed=row.claimed,
        running=row.running,
        succeeded=row.succeeded,
        failed=row.failed,
        cancelled=row.cancelled,
        lost=row.lost,
    )


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: UUID,
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> JobResponse:
    """Current snapshot of one job, including its result once terminal."""
    try:
        job = await run_in_threadpool(dispatcher.query, job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return JobResponse.model_validate(job)


@router.delete("/{job_id}", status_code=204)
async def cancel_job(
    job_id: UUID,
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> None:
    """
    Cancel a job.

    QUEUED, CLAIMED and RUNNING jobs can be cancelled. A worker building the
    job gets Rejected on its next heartbeat and kills the build. Finished jobs
    answer 409.
    """
    try:
        await run_in_threadpool(dispatcher.cancel, job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    except AlreadyTerminal as e:
        raise HTTPException(status_code=409, detail=str(e))
