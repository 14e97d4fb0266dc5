"""
Pipeline ORM model — one submission fanned out over several targets.

A front-end asking for "build bash,fish on mainline" gets one pipeline and
one job per architecture. The pipeline only groups jobs for display; each
job is leased, retried and reported on its own.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, JSONDocument, UTCDateTime, utcnow
from models.job import Job


class Pipeline(Base):
    __tablename__ = "pipelines"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    targets: Mapped[str] = mapped_column(String(1024), nullable=False)  # comma-separated
    payload: Mapped[dict] = mapped_column(JSONDocument, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    jobs: Mapped[list[Job]] = relationship(Job, order_by=Job.target, lazy="selectin")

    @property
    def target_list(self) -> list[str]:
        return [t for t in self.targets.split(",") if t]

    def __repr__(self) -> str:
        return f"<Pipeline {self.id} [{self.targets}]>"
