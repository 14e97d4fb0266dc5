"""
Pydantic schemas for the /jobs endpoints.

These are NOT database models — they define the HTTP API contract:
- JobCreate: what a front-end sends to request a build (request body)
- JobResponse: what we send back for a single job (response body)
- JobListResponse: paginated list of jobs
- JobStats: job counts per status

FastAPI validates incoming data against these automatically.
A payload with an empty package list gets a 422 before our code even runs.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID

from dispatcher.payload import BuildPayload


class JobCreate(BaseModel):
    """Request body for POST /jobs/ — one build on one target."""

    target: str = Field(
        ...,  # ... means required, no default
        min_length=1,
        max_length=64,
        examples=["amd64"],
    )
    payload: BuildPayload
    max_attempts: Optional[int] = Field(
        default=None,
        ge=1,
        le=10,
        description="Lease losses tolerated before the job is marked LOST (server default when omitted)",
    )


class JobResponse(BaseModel):
    """Response body for a single job — returned by GET /jobs/{id} and POST /jobs/."""

    id: UUID
    target: str
    pipeline_id: Optional[UUID] = None
    status: str
    owner: Optional[str] = None
    lease_expiry: Optional[datetime] = None
    attempt_count: int
    max_attempts: int
    payload: dict
    result: Optional[dict] = None
    created_at: datetime
    updated_at: datetime

    # from_attributes=True tells Pydantic to read from SQLAlchemy model attributes
    # (e.g., job.target) instead of requiring a dict (e.g., {"target": "..."})
    model_config = {"from_attributes": True}


class JobListResponse(BaseModel):
    """Paginated list of jobs — returned by GET /jobs/."""

    jobs: list[JobResponse]
    total: int       # total matching jobs (ignoring pagination)
    page: int        # current page number
    page_size: int   # jobs per page


class JobStats(BaseModel):
    """Job counts per status — returned by GET /jobs/stats."""

    total_jobs: int
    queued: int
    claimed: int
    running: int
    succeeded: int
    failed: int
    cancelled: int
    lost: int
