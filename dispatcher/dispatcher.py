"""
Dispatcher — turns front-end requests into durable, published jobs.

    submit(target, payload)
        1. validate the target and the payload
        2. Job Store create()          → row with status QUEUED
        3. Queue publish()             → job id on the target's Redis list

If step 3 fails the job is still safe: it is QUEUED with published_at NULL,
and the lease monitor re-publishes every QUEUED job that has not been
published recently. So a Redis outage delays jobs but never drops them.

The Dispatcher never changes job status itself except through the store's
cancel().
"""

import logging
import uuid
from typing import Callable, Optional

from redis.exceptions import RedisError

from broker.redis_queue import RedisJobQueue
from dispatcher.payload import validate_build_payload
from dispatcher.targets import expand_targets
from models.job import Job
from models.pipeline import Pipeline
from store.job_store import JobStore

logger = logging.getLogger(__name__)


class Dispatcher:

    def __init__(
        self,
        store: JobStore,
        queue: RedisJobQueue,
        validate_payload: Callable[[dict], dict] = validate_build_payload,
    ):
        self._store = store
        self._queue = queue
        self._validate_payload = validate_payload

    def submit(self, target: str, payload: dict, max_attempts: Optional[int] = None) -> uuid.UUID:
        """Create and publish a job for one target. Returns the job id."""
        self._store.validate_target(target)
        payload = self._validate_payload(payload)
        job_id = self._store.create(target, payload, max_attempts=max_attempts)
        self._publish(job_id, target)
        return job_id

    def submit_pipeline(
        self,
        targets: list[str],
        payload: dict,
        max_attempts: Optional[int] = None,
    ) -> Pipeline:
        """Create one job per target (groups like "mainline" expanded) and publish them all."""
        expanded = expand_targets(targets, known=self._store.known_targets)
        payload = self._validate_payload(payload)
        pipeline = self._store.create_pipeline(expanded, payload, max_attempts=max_attempts)
        for job in pipeline.jobs:
            self._publish(job.id, job.target)
        return pipeline

    def cancel(self, job_id) -> Job:
        """Cancel a non-terminal job. A running worker notices on its next heartbeat."""
        return self._store.cancel(job_id)

    def query(self, job_id) -> Job:
        return self._store.get(job_id)

    def get_pipeline(self, pipeline_id) -> Pipeline:
        return self._store.get_pipeline(pipeline_id)

    def _publish(self, job_id, target: str) -> bool:
        try:
            self._queue.publish(target, job_id)
        except RedisError as e:
            logger.warning(f"Publish of job {job_id} to {target} failed, lease monitor will retry: {e}")
            return False
        self._store.mark_published(job_id)
        return True
