"""
Job ORM model — maps to the "jobs" table in PostgreSQL.

The Job row is the single source of truth for a build request:
- UUID primary key, assigned at creation and never changed
- target: which worker population may claim it (e.g. "amd64")
- payload: opaque build description (packages, git ref, flags); never
  interpreted by the store, the queue or the lease monitor
- owner + lease_expiry: the lease. Only the Job Store writes them, and only
  through conditional UPDATEs (see store/job_store.py)
- attempt_count + max_attempts: lease losses so far and the bound that
  turns a job LOST
- published_at / notified_at: drive the two backstops the lease monitor runs
  (re-publish QUEUED jobs, re-emit terminal notifications)
"""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, JSONDocument, UTCDateTime, utcnow
from models.enums import JobStatus


class Job(Base):
    __tablename__ = "jobs"

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    target: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    pipeline_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("pipelines.id"), nullable=True, index=True
    )

    # ── Payload & result ────────────────────────────────────────
    payload: Mapped[dict] = mapped_column(JSONDocument, default=dict, nullable=False)
    result: Mapped[dict | None] = mapped_column(JSONDocument, nullable=True)

    # ── State machine + lease ───────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.QUEUED.value, nullable=False, index=True
    )
    owner: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lease_expiry: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    # ── Timestamps ──────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    notified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Job {self.id} [{self.target}] {self.status}>"
