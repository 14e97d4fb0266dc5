"""
Worker registry — which build machines exist and when they last checked in.

Worker agents register once on start and touch their row on every lease
heartbeat and every idle subscription tick. The API's fleet status reads it.
Lease safety never depends on this table.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import sessionmaker

from models.base import utcnow
from models.worker import Worker

logger = logging.getLogger(__name__)


class WorkerRegistry:

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def register(
        self,
        worker_id: str,
        hostname: str,
        target: str,
        pid: int,
        git_commit: Optional[str] = None,
        memory_bytes: Optional[int] = None,
        logical_cores: Optional[int] = None,
    ) -> None:
        """Insert or refresh the worker's row. Safe to call on every restart."""
        now = self._clock()
        with self._session_factory() as session:
            worker = session.get(Worker, worker_id)
            if worker is None:
                worker = Worker(worker_id=worker_id, registered_at=now)
                session.add(worker)
            worker.hostname = hostname
            worker.target = target
            worker.pid = pid
            worker.git_commit = git_commit
            worker.memory_bytes = memory_bytes
            worker.logical_cores = logical_cores
            worker.current_job_id = None
            worker.last_heartbeat_at = now
            session.commit()
        logger.info(f"Worker {worker_id} registered for target {target}")

    def touch(self, worker_id: str, current_job_id: Optional[str] = None) -> None:
        with self._session_factory() as session:
            worker = session.get(Worker, worker_id)
            if worker is None:
                logger.warning(f"Heartbeat from unregistered worker {worker_id}, ignoring")
                return
            worker.last_heartbeat_at = self._clock()
            worker.current_job_id = current_job_id
            session.commit()
