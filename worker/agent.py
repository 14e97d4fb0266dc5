"""
Worker agent — one per build machine, serving one target.

    subscribe(target) ──job id──> claim ──Job──> build environment
                                    │                 │  (lease keeper heartbeats
                                Conflict              │   beside it)
                                 → skip               ▼
                                               complete(result)

For every job id the queue delivers:

    1. claim() in the Job Store. Conflict means another worker has it (or it
       is already finished); duplicate deliveries end here.
    2. Take the payload from the claimed Job, never from the queue.
    3. Send the first heartbeat (CLAIMED → RUNNING), start the lease keeper,
       run the build environment.
    4. Build ended:
       - lease lost meanwhile → discard the outcome, report nothing
       - build timeout       → report FAILED with cause "timeout"
       - agent stopping      → release the job back to QUEUED, report nothing
       - otherwise           → report SUCCEEDED / FAILED from the exit status

Builds run one at a time; a machine that can build two things at once runs
two agents.
"""

import logging
import socket
import threading
from typing import Callable, Optional

from broker.redis_queue import RedisJobQueue
from buildenv.base import AbstractBuildEnvironment, BuildOutcome
from buildenv.registry import create_build_environment
from config.settings import settings
from models.enums import FailureCause, JobStatus
from store.errors import Conflict, JobNotFound, Rejected
from store.job_store import JobStore
from store.worker_registry import WorkerRegistry
from worker.lease_keeper import LeaseKeeper
from worker.retry import TRANSIENT_ERRORS, backoff_delay, with_backoff

logger = logging.getLogger(__name__)


class WorkerAgent:

    def __init__(
        self,
        store: JobStore,
        queue: RedisJobQueue,
        target: str = settings.WORKER_TARGET,
        worker_id: str = "",
        registry: Optional[WorkerRegistry] = None,
        environment_factory: Optional[Callable[[], AbstractBuildEnvironment]] = None,
        lease_duration: float = settings.LEASE_DURATION,
        heartbeat_interval: float = settings.HEARTBEAT_INTERVAL,
        build_timeout: float = settings.BUILD_TIMEOUT,
    ):
        if heartbeat_interval >= lease_duration:
            raise ValueError("heartbeat_interval must be less than lease_duration")
        self._store = store
        self._queue = queue
        self.target = target
        self.worker_id = worker_id or settings.worker_id
        self._registry = registry
        self._environment_factory = environment_factory or (
            lambda: create_build_environment(settings.BUILD_ENVIRONMENT)
        )
        self._lease_duration = lease_duration
        self._heartbeat_interval = heartbeat_interval
        self._build_timeout = build_timeout

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._current_env: Optional[AbstractBuildEnvironment] = None
        self._env_lock = threading.Lock()

    # ── Lifecycle ───────────────────────────────────────────────

    def start(self) -> None:
        """Run the subscription loop in a daemon thread."""
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name=f"agent-{self.target}", daemon=True)
        self._thread.start()
        logger.info(f"Worker agent {self.worker_id} started for target {self.target}")

    def stop(self) -> None:
        """
        Stop consuming and kill the running build, if any.

        The abandoned job is released back to QUEUED and re-published, so the
        shutdown does not count against its max_attempts.
        """
        self._stop.set()
        with self._env_lock:
            env = self._current_env
        if env is not None:
            logger.warning(f"Worker {self.worker_id} stopping, terminating running build")
            env.terminate()
        if self._thread is not None:
            self._thread.join()

    def run(self) -> None:
        """Consume job ids until stop(). Transient Redis failures back off and resubscribe."""
        failures = 0
        while not self._stop.is_set():
            try:
                for job_id in self._queue.subscribe(self.target, stop_event=self._stop, yield_idle=True):
                    failures = 0
                    if job_id is None:
                        self._touch_registry()
                        continue
                    self.handle(job_id)
            except TRANSIENT_ERRORS as e:
                failures += 1
                delay = backoff_delay(failures)
                logger.warning(f"Queue subscription for {self.target} failed ({e}), resubscribing in {delay:.1f}s")
                self._stop.wait(delay)
            except Exception as e:
                logger.error(f"Worker loop error: {e}", exc_info=True)
                self._stop.wait(settings.RETRY_BACKOFF_BASE)

    # ── One job ─────────────────────────────────────────────────

    def handle(self, job_id: str) -> Optional[JobStatus]:
        """
        Claim, build and report one job.

        Returns the terminal status stored, or None when the job was skipped
        (Conflict), abandoned (shutdown) or its lease was lost.
        """
        try:
            job = with_backoff(
                self._store.claim, job_id, self.worker_id, self._lease_duration, target=self.target
            )
        except Conflict as e:
            logger.debug(f"Skipping job {job_id}: {e}")
            return None
        except JobNotFound:
            logger.warning(f"Job {job_id} from queue {self.target} not found in store, skipping")
            return None

        job_key = str(job.id)
        env = self._environment_factory()
        keeper = LeaseKeeper(
            self._store,
            job_key,
            self.worker_id,
            env,
            heartbeat_interval=self._heartbeat_interval,
            lease_duration=self._lease_duration,
            build_timeout=self._build_timeout,
            registry=self._registry,
        )

        with self._env_lock:
            self._current_env = env
        # stop() may have run before the env was registered
        if self._stop.is_set():
            env.terminate()

        # First heartbeat moves CLAIMED → RUNNING before any work starts
        if not keeper.beat():
            with self._env_lock:
                self._current_env = None
            return None

        logger.info(
            f"Job {job_key} building on {self.worker_id} "
            f"(attempt {job.attempt_count + 1}/{job.max_attempts})"
        )
        keeper.start()
        try:
            outcome = env.execute(job.payload, job_key)
        except Exception as e:
            logger.error(f"Job {job_key} build environment error: {e}", exc_info=True)
            outcome = BuildOutcome(exit_status=None, cause=FailureCause.ENVIRONMENT_ERROR.value)
        finally:
            keeper.stop()
            with self._env_lock:
                self._current_env = None

        if keeper.lost.is_set():
            logger.warning(f"Job {job_key} lease lost during build, local result discarded")
            return None

        if keeper.timed_out.is_set():
            outcome.cause = FailureCause.TIMEOUT.value
        elif outcome.terminated:
            logger.warning(f"Job {job_key} abandoned on shutdown")
            self._release(job_key)
            return None
        elif outcome.exit_status != 0 and outcome.cause is None:
            outcome.cause = FailureCause.BUILD_FAILED.value

        return self._report(job_key, outcome)

    def _report(self, job_id: str, outcome: BuildOutcome) -> Optional[JobStatus]:
        result = outcome.to_result()
        result["worker"] = {
            "worker_id": self.worker_id,
            "hostname": socket.gethostname(),
            "target": self.target,
        }
        try:
            status = with_backoff(self._store.complete, job_id, self.worker_id, result)
        except Rejected as e:
            logger.warning(f"Job {job_id} completion rejected ({e.reason}), result discarded")
            return None
        self._touch_registry()
        return status

    def _release(self, job_id: str) -> None:
        try:
            released = with_backoff(self._store.release, job_id, self.worker_id)
        except TRANSIENT_ERRORS as e:
            logger.warning(f"Job {job_id} release failed ({e}), lease left to expire")
            return
        if not released:
            return
        try:
            self._queue.publish(self.target, job_id)
            self._store.mark_published(job_id)
        except TRANSIENT_ERRORS as e:
            logger.warning(f"Job {job_id} released but not re-published ({e}), lease monitor will retry")

    def _touch_registry(self) -> None:
        if self._registry is None:
            return
        try:
            self._registry.touch(self.worker_id)
        except TRANSIENT_ERRORS as e:
            logger.debug(f"Worker registry touch failed: {e}")
