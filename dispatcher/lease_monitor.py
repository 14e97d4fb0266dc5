"""
Lease Monitor — the only component that notices dead workers.

This runs in a daemon thread. Every LEASE_MONITOR_SCAN_INTERVAL seconds it
executes one scan:

    1. Expired leases: CLAIMED/RUNNING jobs whose lease_expiry is in the past
       → QUEUED again and re-published if attempts remain, else LOST
    2. Publish backstop: QUEUED jobs never published, or published longer
       than one scan interval ago → publish again
    3. Notification backstop: terminal jobs whose event never reached the
       notification list → emit again

A worker that crashes, hangs or loses its network simply stops
heartbeating; its lease runs out and step 1 picks the job up within
lease_duration + scan_interval of the last heartbeat.

The monitor keeps no state between scans and every change goes through the
store's conditional updates, so several monitors can run side by side.
"""

import logging
import threading
from dataclasses import dataclass

from redis.exceptions import RedisError

from broker.redis_queue import RedisJobQueue
from config.settings import settings
from models.enums import JobStatus
from store.job_store import JobStore

logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    requeued: int = 0
    lost: int = 0
    republished: int = 0
    renotified: int = 0


class LeaseMonitor:

    def __init__(
        self,
        store: JobStore,
        queue: RedisJobQueue,
        scan_interval: float = settings.LEASE_MONITOR_SCAN_INTERVAL,
        batch_size: int = 100,
    ):
        self._store = store
        self._queue = queue
        self._scan_interval = scan_interval
        self._batch_size = batch_size
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the scan loop in a daemon thread."""
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_loop, name="lease-monitor", daemon=True)
        self._thread.start()
        logger.info(f"Lease monitor started, scanning every {self._scan_interval}s")

    def stop(self) -> None:
        """Signal the loop to stop. It will finish its current scan and exit."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._scan_interval + 5)

    def _run_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.scan()
            except Exception as e:
                logger.error(f"Lease monitor scan error: {e}", exc_info=True)
            self._stop.wait(self._scan_interval)

    def scan(self) -> ScanReport:
        report = ScanReport()
        self._recover_expired_leases(report)
        self._republish_queued(report)
        self._renotify_terminal(report)

        if report.requeued or report.lost or report.republished or report.renotified:
            logger.info(
                f"Scan: {report.requeued} requeued, {report.lost} lost, "
                f"{report.republished} republished, {report.renotified} renotified"
            )
        return report

    def _recover_expired_leases(self, report: ScanReport) -> None:
        for job_id, attempts in self._store.expired_leases(limit=self._batch_size):
            outcome = self._store.recover_expired(job_id, attempts)
            if outcome == JobStatus.QUEUED:
                report.requeued += 1
                job = self._store.get(job_id)
                if self._publish(job_id, job.target):
                    report.republished += 1
            elif outcome == JobStatus.LOST:
                report.lost += 1

    def _republish_queued(self, report: ScanReport) -> None:
        stale = self._store.unpublished_queued(older_than=self._scan_interval, limit=self._batch_size)
        for job_id, target in stale:
            if self._publish(job_id, target):
                report.republished += 1

    def _renotify_terminal(self, report: ScanReport) -> None:
        for job in self._store.unnotified_terminal(older_than=self._scan_interval, limit=self._batch_size):
            if self._store.emit_terminal(job):
                report.renotified += 1

    def _publish(self, job_id, target: str) -> bool:
        try:
            self._queue.publish(target, job_id)
        except RedisError as e:
            logger.warning(f"Re-publish of job {job_id} to {target} failed: {e}")
            return False
        self._store.mark_published(job_id)
        return True
