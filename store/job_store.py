"""
Job Store — the authoritative record of every job and the only writer of job status.

Every mutation is a single conditional UPDATE:

    UPDATE jobs SET ... WHERE id = :id AND <expected current state>

and the affected row count tells us whether we won. Postgres re-checks the
WHERE clause against the latest committed row version when two updaters
race on the same row, so for any one job these operations are linearizable
no matter how many API, worker or lease-monitor processes run at once. No
process-wide locks, no SELECT ... FOR UPDATE.

State machine:

    QUEUED ──claim──> CLAIMED ──heartbeat──> RUNNING ──complete──> SUCCEEDED | FAILED
       ^                 │                      │
       └──lease expiry───┴──────────────────────┘   (attempts left)
                         └────────> LOST <──────┘   (attempts exhausted)
    QUEUED | CLAIMED | RUNNING ──cancel──> CANCELLED

Terminal rows (SUCCEEDED, FAILED, CANCELLED, LOST) never change status again;
every UPDATE below excludes them in its WHERE clause.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from models.base import utcnow
from models.enums import JobStatus, LEASED_STATUSES, TERMINAL_STATUSES
from models.job import Job
from models.pipeline import Pipeline
from store.errors import (
    AlreadyTerminal,
    Conflict,
    InvalidTarget,
    JobNotFound,
    PipelineNotFound,
    Rejected,
)

logger = logging.getLogger(__name__)

_LEASED = [s.value for s in LEASED_STATUSES]
_TERMINAL = [s.value for s in TERMINAL_STATUSES]


def _as_uuid(job_id) -> uuid.UUID:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(str(job_id))
    except ValueError:
        raise JobNotFound(job_id) from None


def outcome_status(result: dict) -> JobStatus:
    """SUCCEEDED only for a clean exit with no recorded failure cause."""
    if result.get("exit_status") == 0 and not result.get("cause"):
        return JobStatus.SUCCEEDED
    return JobStatus.FAILED


class JobStore:

    def __init__(
        self,
        session_factory: sessionmaker,
        known_targets: Optional[list[str]] = None,
        notifier=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._known_targets = list(known_targets if known_targets is not None else settings.KNOWN_TARGETS)
        self._notifier = notifier
        self._clock = clock

    @property
    def known_targets(self) -> list[str]:
        return list(self._known_targets)

    def now(self) -> datetime:
        return self._clock()

    # ── Creation ────────────────────────────────────────────────

    def validate_target(self, target: str) -> None:
        if target not in self._known_targets:
            raise InvalidTarget(target, self._known_targets)

    def create(
        self,
        target: str,
        payload: dict,
        max_attempts: Optional[int] = None,
        pipeline_id: Optional[uuid.UUID] = None,
    ) -> uuid.UUID:
        """Persist a new QUEUED job with attempt_count 0 and return its id."""
        self.validate_target(target)
        now = self._clock()
        job = Job(
            id=uuid.uuid4(),
            target=target,
            payload=payload,
            pipeline_id=pipeline_id,
            status=JobStatus.QUEUED.value,
            attempt_count=0,
            max_attempts=max_attempts or settings.MAX_ATTEMPTS,
            created_at=now,
            updated_at=now,
        )
        with self._session_factory() as session:
            session.add(job)
            session.commit()
            job_id = job.id
        logger.info(f"Job {job_id} created for target {target}")
        return job_id

    def create_pipeline(
        self,
        targets: list[str],
        payload: dict,
        max_attempts: Optional[int] = None,
    ) -> Pipeline:
        """Create one pipeline plus one QUEUED job per target in a single transaction."""
        for target in targets:
            self.validate_target(target)

        now = self._clock()
        pipeline = Pipeline(id=uuid.uuid4(), targets=",".join(targets), payload=payload, created_at=now)
        with self._session_factory() as session:
            session.add(pipeline)
            for target in targets:
                session.add(Job(
                    id=uuid.uuid4(),
                    target=target,
                    payload=payload,
                    pipeline_id=pipeline.id,
                    status=JobStatus.QUEUED.value,
                    attempt_count=0,
                    max_attempts=max_attempts or settings.MAX_ATTEMPTS,
                    created_at=now,
                    updated_at=now,
                ))
            session.commit()
            pipeline_id = pipeline.id

        logger.info(f"Pipeline {pipeline_id} created with {len(targets)} job(s): {', '.join(targets)}")
        return self.get_pipeline(pipeline_id)

    # ── Reads ───────────────────────────────────────────────────

    def get(self, job_id) -> Job:
        """Read-only snapshot, detached from any session."""
        uid = _as_uuid(job_id)
        with self._session_factory() as session:
            return self._snapshot(session, uid)

    def get_pipeline(self, pipeline_id) -> Pipeline:
        uid = _as_uuid(pipeline_id)
        with self._session_factory() as session:
            pipeline = session.get(Pipeline, uid, populate_existing=True)
            if pipeline is None:
                raise PipelineNotFound(pipeline_id)
            session.expunge_all()  # jobs were selectin-loaded with the pipeline
            return pipeline

    # ── Lease operations (worker agent) ─────────────────────────

    def claim(self, job_id, worker_id: str, lease_duration: float, target: Optional[str] = None) -> Job:
        """
        Take the lease on a job.

        Succeeds for a QUEUED job, or for a CLAIMED/RUNNING job whose lease
        already expired (a takeover, which counts as one lease loss). A
        repeated claim by the worker that already holds the live lease returns
        the job unchanged. Raises Conflict when someone else holds a live
        lease, the job is terminal, the job belongs to a different target than
        the one given, or a takeover would exhaust max_attempts (the lease
        monitor turns those LOST).
        """
        uid = _as_uuid(job_id)
        now = self._clock()
        expiry = now + timedelta(seconds=lease_duration)
        scope = [Job.id == uid]
        if target is not None:
            scope.append(Job.target == target)

        with self._session_factory() as session:
            result = session.execute(
                update(Job)
                .where(*scope, Job.status == JobStatus.QUEUED.value)
                .values(
                    status=JobStatus.CLAIMED.value,
                    owner=worker_id,
                    lease_expiry=expiry,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            takeover = False
            if result.rowcount == 0:
                result = session.execute(
                    update(Job)
                    .where(
                        *scope,
                        Job.status.in_(_LEASED),
                        Job.lease_expiry < now,
                        Job.attempt_count + 1 < Job.max_attempts,
                    )
                    .values(
                        status=JobStatus.CLAIMED.value,
                        owner=worker_id,
                        lease_expiry=expiry,
                        attempt_count=Job.attempt_count + 1,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                takeover = result.rowcount == 1

            if result.rowcount == 0:
                session.rollback()
                current = session.get(Job, uid)
                if current is None:
                    raise JobNotFound(job_id)
                if (
                    current.owner == worker_id
                    and current.status in _LEASED
                    and (target is None or current.target == target)
                    and current.lease_expiry is not None
                    and current.lease_expiry > now
                ):
                    # Our own earlier claim committed before its reply was lost
                    logger.info(f"Job {uid} already claimed by {worker_id}, repeated claim ignored")
                    return self._snapshot(session, uid)
                logger.debug(f"Job {uid} claim by {worker_id} lost: status={current.status} owner={current.owner}")
                raise Conflict(uid, current.status)

            session.commit()
            job = self._snapshot(session, uid)

        if takeover:
            logger.warning(f"Job {uid} taken over by {worker_id} after lease expiry (attempt {job.attempt_count})")
        else:
            logger.info(f"Job {uid} claimed by {worker_id} until {expiry.isoformat()}")
        return job

    def heartbeat(self, job_id, worker_id: str, lease_duration: Optional[float] = None) -> datetime:
        """
        Extend a live lease and return the new expiry.

        The first heartbeat after a claim moves CLAIMED → RUNNING. Raises
        Rejected when the caller no longer owns a live lease, including when
        the job was cancelled; the worker must kill its build.
        """
        uid = _as_uuid(job_id)
        now = self._clock()
        expiry = now + timedelta(seconds=lease_duration or settings.LEASE_DURATION)

        with self._session_factory() as session:
            result = session.execute(
                update(Job)
                .where(
                    Job.id == uid,
                    Job.owner == worker_id,
                    Job.status.in_(_LEASED),
                    Job.lease_expiry > now,
                )
                .values(status=JobStatus.RUNNING.value, lease_expiry=expiry, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.rollback()
                raise Rejected(uid, worker_id, self._rejection_reason(session, uid, worker_id))
            session.commit()

        logger.debug(f"Job {uid} lease extended for {worker_id} until {expiry.isoformat()}")
        return expiry

    def complete(self, job_id, worker_id: str, result: dict) -> JobStatus:
        """
        Record the terminal outcome reported by the lease owner.

        A repeated report from the worker that already completed the job is a
        no-op returning the stored status. Anything else without a live lease
        is Rejected.
        """
        uid = _as_uuid(job_id)
        now = self._clock()
        status = outcome_status(result)

        with self._session_factory() as session:
            updated = session.execute(
                update(Job)
                .where(
                    Job.id == uid,
                    Job.owner == worker_id,
                    Job.status.in_(_LEASED),
                    Job.lease_expiry > now,
                )
                .values(status=status.value, result=result, lease_expiry=None, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                session.rollback()
                current = session.get(Job, uid)
                if current is None:
                    raise JobNotFound(job_id)
                if current.owner == worker_id and current.status in (
                    JobStatus.SUCCEEDED.value, JobStatus.FAILED.value
                ):
                    logger.info(f"Job {uid} duplicate completion from {worker_id} ignored")
                    return JobStatus(current.status)
                raise Rejected(uid, worker_id, self._rejection_reason(session, uid, worker_id))

            session.commit()
            job = self._snapshot(session, uid)

        logger.info(f"Job {uid} finished on {worker_id}: {status.value}")
        self._emit(job)
        return status

    def release(self, job_id, worker_id: str) -> bool:
        """
        Give a leased job back to the queue without counting a lease loss.

        For a worker shutting down mid-build. The job returns to QUEUED with
        published_at cleared so it is re-published. Returns False, changing
        nothing, when the worker no longer holds a live lease.
        """
        uid = _as_uuid(job_id)
        now = self._clock()

        with self._session_factory() as session:
            result = session.execute(
                update(Job)
                .where(
                    Job.id == uid,
                    Job.owner == worker_id,
                    Job.status.in_(_LEASED),
                    Job.lease_expiry > now,
                )
                .values(
                    status=JobStatus.QUEUED.value,
                    owner=None,
                    lease_expiry=None,
                    published_at=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.rollback()
                logger.debug(f"Job {uid} release by {worker_id} ignored, lease not held")
                return False
            session.commit()

        logger.info(f"Job {uid} released by {worker_id}, back to QUEUED")
        return True

    # ── Front-end operations ────────────────────────────────────

    def cancel(self, job_id) -> Job:
        uid = _as_uuid(job_id)
        now = self._clock()

        with self._session_factory() as session:
            result = session.execute(
                update(Job)
                .where(Job.id == uid, Job.status.not_in(_TERMINAL))
                .values(
                    status=JobStatus.CANCELLED.value,
                    lease_expiry=None,
                    result={"cause": "cancelled"},
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.rollback()
                current = session.get(Job, uid)
                if current is None:
                    raise JobNotFound(job_id)
                raise AlreadyTerminal(uid, current.status)
            session.commit()
            job = self._snapshot(session, uid)

        logger.info(f"Job {uid} cancelled")
        self._emit(job)
        return job

    # ── Lease monitor operations ────────────────────────────────

    def expired_leases(self, limit: int = 100) -> list[tuple[uuid.UUID, int]]:
        """(job_id, attempt_count) for CLAIMED/RUNNING jobs whose lease expired."""
        now = self._clock()
        with self._session_factory() as session:
            rows = session.execute(
                select(Job.id, Job.attempt_count)
                .where(Job.status.in_(_LEASED), Job.lease_expiry < now)
                .order_by(Job.lease_expiry)
                .limit(limit)
            ).all()
        return [(row.id, row.attempt_count) for row in rows]

    def recover_expired(self, job_id, observed_attempts: int) -> Optional[JobStatus]:
        """
        Return an expired lease to the pool: QUEUED while attempts remain, LOST after.

        The attempt_count guard makes this a no-op (returns None) if another
        monitor or a takeover claim got there first.
        """
        uid = _as_uuid(job_id)
        now = self._clock()

        with self._session_factory() as session:
            current = session.get(Job, uid)
            if current is None:
                raise JobNotFound(job_id)
            attempts = observed_attempts + 1
            last_owner = current.owner

            if attempts < current.max_attempts:
                new_status = JobStatus.QUEUED
                values = dict(
                    status=new_status.value,
                    owner=None,
                    lease_expiry=None,
                    attempt_count=attempts,
                    published_at=None,
                    updated_at=now,
                )
            else:
                new_status = JobStatus.LOST
                values = dict(
                    status=new_status.value,
                    lease_expiry=None,
                    attempt_count=attempts,
                    result={
                        "cause": "lease_lost",
                        "attempts": attempts,
                        "last_owner": last_owner,
                    },
                    updated_at=now,
                )

            result = session.execute(
                update(Job)
                .where(
                    Job.id == uid,
                    Job.status.in_(_LEASED),
                    Job.lease_expiry < now,
                    Job.attempt_count == observed_attempts,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.rollback()
                return None
            session.commit()
            job = self._snapshot(session, uid)

        if new_status == JobStatus.LOST:
            logger.error(
                f"Job {uid} LOST after {attempts} lease losses (last owner {last_owner}); "
                f"operator intervention required"
            )
            self._emit(job)
        else:
            logger.warning(
                f"Job {uid} lease held by {last_owner} expired, requeued "
                f"(attempt {attempts}/{job.max_attempts})"
            )
        return new_status

    def unpublished_queued(self, older_than: float, limit: int = 100) -> list[tuple[uuid.UUID, str]]:
        """QUEUED jobs never published, or last published more than `older_than` seconds ago."""
        cutoff = self._clock() - timedelta(seconds=older_than)
        with self._session_factory() as session:
            rows = session.execute(
                select(Job.id, Job.target)
                .where(
                    Job.status == JobStatus.QUEUED.value,
                    or_(Job.published_at.is_(None), Job.published_at < cutoff),
                )
                .order_by(Job.created_at)
                .limit(limit)
            ).all()
        return [(row.id, row.target) for row in rows]

    def mark_published(self, job_id) -> None:
        uid = _as_uuid(job_id)
        with self._session_factory() as session:
            session.execute(
                update(Job)
                .where(Job.id == uid)
                .values(published_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            session.commit()

    def unnotified_terminal(self, older_than: float = 0.0, limit: int = 100) -> list[Job]:
        """Terminal jobs whose notification was never accepted, settled for `older_than` seconds."""
        cutoff = self._clock() - timedelta(seconds=older_than)
        with self._session_factory() as session:
            jobs = session.execute(
                select(Job)
                .where(
                    Job.status.in_(_TERMINAL),
                    Job.notified_at.is_(None),
                    Job.updated_at <= cutoff,
                )
                .order_by(Job.updated_at)
                .limit(limit)
            ).scalars().all()
            session.expunge_all()
        return list(jobs)

    def mark_notified(self, job_id) -> None:
        uid = _as_uuid(job_id)
        with self._session_factory() as session:
            session.execute(
                update(Job)
                .where(Job.id == uid, Job.notified_at.is_(None))
                .values(notified_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            session.commit()

    def emit_terminal(self, job: Job) -> bool:
        """Hand a terminal job to the notifier; True once the notifier accepted it."""
        return self._emit(job)

    # ── Internals ───────────────────────────────────────────────

    def _emit(self, job: Job) -> bool:
        if self._notifier is None:
            return False
        try:
            self._notifier.notify(job)
        except Exception as e:
            # notified_at stays NULL, the lease monitor re-emits it
            logger.warning(f"Notification for job {job.id} ({job.status}) deferred: {e}")
            return False
        self.mark_notified(job.id)
        return True

    @staticmethod
    def _snapshot(session: Session, uid: uuid.UUID) -> Job:
        job = session.get(Job, uid, populate_existing=True)
        if job is None:
            raise JobNotFound(uid)
        session.expunge(job)
        return job

    def _rejection_reason(self, session: Session, uid: uuid.UUID, worker_id: str) -> str:
        current = session.get(Job, uid, populate_existing=True)
        if current is None:
            raise JobNotFound(uid)
        if current.status in _TERMINAL:
            return f"job is {current.status}"
        if current.owner != worker_id:
            return f"lease held by {current.owner}" if current.owner else "job was requeued"
        return "lease expired"
