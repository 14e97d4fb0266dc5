"""
Lease monitor process entry point.

    python -m dispatcher.main

Runs the lease monitor loop (expired leases → requeue or LOST, re-publish
stale QUEUED jobs, re-emit missed notifications). Any number of these may
run at once; each scan is made of conditional updates.
"""

import logging
import signal
import threading

from redis import Redis

from broker.notifier import RedisNotifier
from broker.redis_queue import RedisJobQueue
from config.settings import settings
from dispatcher.lease_monitor import LeaseMonitor
from models.base import SyncSessionLocal, sync_engine
from models.tables import Base
from store.job_store import JobStore

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    logger.info("Ensuring database tables exist...")
    Base.metadata.create_all(sync_engine)

    redis_client = Redis.from_url(settings.redis_url)
    store = JobStore(SyncSessionLocal, notifier=RedisNotifier(redis_client))
    monitor = LeaseMonitor(store, RedisJobQueue(redis_client))
    monitor.start()

    shutdown_event = threading.Event()

    def shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info("Lease monitor running. Press Ctrl+C to stop.")
    shutdown_event.wait()
    monitor.stop()
    logger.info("Lease monitor exited")


if __name__ == "__main__":
    main()
