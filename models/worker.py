"""
Worker ORM model — the fleet registry.

Purely informational: which build machines exist, what they serve and when
they last checked in. Lease safety never reads this table; a worker that is
"online" here still loses its jobs if its lease heartbeats stop.
"""

from datetime import datetime

from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, UTCDateTime, utcnow


class Worker(Base):
    __tablename__ = "workers"

    worker_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    hostname: Mapped[str] = mapped_column(String(255), nullable=False)
    target: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    pid: Mapped[int] = mapped_column(Integer, nullable=False)
    git_commit: Mapped[str | None] = mapped_column(String(64), nullable=True)
    memory_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    logical_cores: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_job_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    registered_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    last_heartbeat_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Worker {self.worker_id} [{self.target}]>"
