"""
Prints terminal job notifications as they arrive.

Usage:
    python -m scripts.watch_notifications

A stand-in for the chat and commit-status front-ends: it consumes the same
notification list they would and logs one line per finished job. Ctrl-C to
stop. Running two of these at once splits the events between them.
"""

import logging
import signal
import threading

from redis import Redis

from broker.notifier import JobEvent, NotificationConsumer
from config.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def print_event(event: JobEvent) -> None:
    result = event.result or {}
    packages = " ".join(event.payload.get("packages", []))
    line = f"{event.status:<9} {event.target:<12} {event.job_id[:8]}  {packages}"
    if result.get("cause"):
        line += f"  cause={result['cause']}"
    if result.get("failed_package"):
        line += f"  failed={result['failed_package']}"
    if result.get("log_reference"):
        line += f"  log={result['log_reference']}"
    logger.info(line)


def main():
    shutdown = threading.Event()
    signal.signal(signal.SIGINT, lambda signum, frame: shutdown.set())
    signal.signal(signal.SIGTERM, lambda signum, frame: shutdown.set())

    consumer = NotificationConsumer(Redis.from_url(settings.redis_url), print_event)
    logger.info(f"Watching {consumer.key}...")
    consumer.run(shutdown)


if __name__ == "__main__":
    main()
