"""
Pydantic schemas for GET /fleet/status.

One row per known target (queue depth, jobs waiting and building, workers
online) plus one row per registered worker.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class TargetStatus(BaseModel):
    target: str
    queue_depth: int     # job ids waiting in the Redis list
    queued: int          # QUEUED rows in the Job Store
    running: int         # CLAIMED + RUNNING rows
    workers_online: int


class WorkerStatus(BaseModel):
    worker_id: str
    hostname: str
    target: str
    pid: int
    git_commit: Optional[str] = None
    memory_bytes: Optional[int] = None
    logical_cores: Optional[int] = None
    current_job_id: Optional[str] = None
    registered_at: datetime
    last_heartbeat_at: datetime
    online: bool


class FleetStatus(BaseModel):
    targets: list[TargetStatus]
    workers: list[WorkerStatus]
