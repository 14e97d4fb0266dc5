"""
Lease keeper — the heartbeat thread that runs beside every build.

While the build environment blocks the agent's thread, the keeper:

    every HEARTBEAT_INTERVAL:
        store.heartbeat(job, worker)  → lease extended, registry touched
        Rejected                      → lease is gone (expired, taken over,
                                        cancelled): kill the build, set `lost`
        transient error               → keep trying; if no heartbeat has
                                        succeeded for a whole lease, assume
                                        it expired and kill the build
    once BUILD_TIMEOUT has passed:
        kill the build, set `timed_out`, keep heartbeating so the agent can
        still report FAILED with its live lease

Killing the build on Rejected is what bounds double execution: another
worker may already be running the same job.
"""

import logging
import threading
import time
from typing import Callable, Optional

from buildenv.base import AbstractBuildEnvironment
from store.errors import Rejected
from store.job_store import JobStore
from store.worker_registry import WorkerRegistry
from worker.retry import TRANSIENT_ERRORS

logger = logging.getLogger(__name__)


class LeaseKeeper:

    def __init__(
        self,
        store: JobStore,
        job_id: str,
        worker_id: str,
        environment: AbstractBuildEnvironment,
        heartbeat_interval: float,
        lease_duration: float,
        build_timeout: float,
        registry: Optional[WorkerRegistry] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        if heartbeat_interval >= lease_duration:
            raise ValueError("heartbeat_interval must be less than lease_duration")
        self._store = store
        self._job_id = job_id
        self._worker_id = worker_id
        self._environment = environment
        self._heartbeat_interval = heartbeat_interval
        self._lease_duration = lease_duration
        self._build_timeout = build_timeout
        self._registry = registry
        self._monotonic = monotonic

        self.lost = threading.Event()
        self.timed_out = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_at = self._last_ok = monotonic()

    def start(self) -> None:
        self._started_at = self._last_ok = self._monotonic()
        self._thread = threading.Thread(
            target=self._run, name=f"lease-{self._job_id[:8]}", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()

    def _run(self) -> None:
        while True:
            deadline_in = self._build_timeout - (self._monotonic() - self._started_at)
            wait = self._heartbeat_interval
            if not self.timed_out.is_set():
                wait = max(0.0, min(wait, deadline_in))
            if self._stop.wait(wait):
                return

            if not self.timed_out.is_set() and self._monotonic() - self._started_at >= self._build_timeout:
                logger.error(f"Job {self._job_id} exceeded build timeout of {self._build_timeout}s, terminating")
                self.timed_out.set()
                self._environment.terminate()

            if not self.beat():
                return

    def beat(self) -> bool:
        """One heartbeat. Returns False once the lease is known to be lost."""
        try:
            self._store.heartbeat(self._job_id, self._worker_id, self._lease_duration)
        except Rejected as e:
            logger.warning(f"Job {self._job_id} lease rejected ({e.reason}), terminating local build")
            self._abort()
            return False
        except TRANSIENT_ERRORS as e:
            silent_for = self._monotonic() - self._last_ok
            if silent_for >= self._lease_duration:
                logger.error(
                    f"Job {self._job_id}: no successful heartbeat for {silent_for:.0f}s, "
                    f"lease presumed expired, terminating local build"
                )
                self._abort()
                return False
            logger.warning(f"Job {self._job_id} heartbeat failed, will retry: {e}")
            return True

        self._last_ok = self._monotonic()
        if self._registry is not None:
            try:
                self._registry.touch(self._worker_id, current_job_id=self._job_id)
            except TRANSIENT_ERRORS as e:
                logger.debug(f"Worker registry touch failed: {e}")
        return True

    def _abort(self) -> None:
        self.lost.set()
        self._environment.terminate()
