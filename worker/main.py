"""
Worker agent process entry point — one per build machine.

    WORKER_TARGET=arm64 BUILD_COMMAND="ciel build -i main" python -m worker.main

Registers the machine in the fleet registry, then runs the agent loop:
consume job ids for WORKER_TARGET, claim, build, report.

The main thread just waits for Ctrl+C (SIGINT) or a kill signal (SIGTERM).
On shutdown a running build is killed and left unreported; its lease expires
and the lease monitor hands the job to another worker.
"""

import logging
import os
import signal
import socket
import subprocess
import threading
from typing import Optional

from redis import Redis

from broker.notifier import RedisNotifier
from broker.redis_queue import RedisJobQueue
from config.settings import settings
from models.base import SyncSessionLocal, sync_engine
from models.tables import Base
from store.job_store import JobStore
from store.worker_registry import WorkerRegistry
from worker.agent import WorkerAgent

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _git_commit(tree: str) -> Optional[str]:
    """HEAD of the build tree, reported so front-ends can show what was built against."""
    if not tree:
        return None
    try:
        out = subprocess.run(
            ["git", "-C", tree, "rev-parse", "HEAD"],
            capture_output=True, text=True, check=True, timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"Could not read git commit of {tree}: {e}")
        return None
    return out.stdout.strip() or None


def _memory_bytes() -> Optional[int]:
    try:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (ValueError, OSError, AttributeError):
        return None


def main():
    logger.info("Ensuring database tables exist...")
    Base.metadata.create_all(sync_engine)

    redis_client = Redis.from_url(settings.redis_url)
    store = JobStore(SyncSessionLocal, notifier=RedisNotifier(redis_client))
    queue = RedisJobQueue(redis_client)
    registry = WorkerRegistry(SyncSessionLocal)

    worker_id = settings.worker_id
    registry.register(
        worker_id,
        hostname=socket.gethostname(),
        target=settings.WORKER_TARGET,
        pid=os.getpid(),
        git_commit=_git_commit(settings.BUILD_TREE),
        memory_bytes=_memory_bytes(),
        logical_cores=os.cpu_count(),
    )

    agent = WorkerAgent(store, queue, target=settings.WORKER_TARGET, worker_id=worker_id, registry=registry)
    agent.start()

    # ── Graceful shutdown on Ctrl+C or SIGTERM ──────────────────
    shutdown_event = threading.Event()

    def shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info(f"Worker {worker_id} serving {settings.WORKER_TARGET}. Press Ctrl+C to stop.")
    shutdown_event.wait()
    agent.stop()
    logger.info("Worker process exited")


if __name__ == "__main__":
    main()
