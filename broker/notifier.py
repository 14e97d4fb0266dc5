"""
Terminal job notifications — the hand-off to chat and commit-status front-ends.

Producer side (RedisNotifier): the Job Store calls notify(job) right after a
terminal transition commits. The event is pushed to one Redis list and the
store then stamps the job's notified_at. If Redis is down, notified_at stays
NULL and the lease monitor re-emits the event later, so delivery is
at-least-once.

Consumer side (NotificationConsumer): moves each event onto a processing
list (BLMOVE), forwards it to the handler and only then acknowledges it:

    {prefix}:notifications ──BLMOVE──> {prefix}:notifications:processing
                                              │
                              handler ok → SET delivered marker, LREM
                              handler raised → LREM + RPUSH back, retried
                              consumer died → left in processing,
                                              recover() moves it back

A (job_id, status) pair whose delivered marker exists is dropped as a
duplicate. The marker is written after the handler returns, so a crash
mid-delivery means a repeat, never a loss.

Formatting the actual chat message or GitHub comment is the handler's job.
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional

from redis import Redis

from config.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class JobEvent:
    job_id: str
    target: str
    status: str
    result: Optional[dict] = None
    pipeline_id: Optional[str] = None
    payload: dict = field(default_factory=dict)

    @classmethod
    def from_job(cls, job) -> "JobEvent":
        return cls(
            job_id=str(job.id),
            target=job.target,
            status=job.status,
            result=job.result,
            pipeline_id=str(job.pipeline_id) if job.pipeline_id else None,
            payload=job.payload or {},
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw) -> "JobEvent":
        return cls(**json.loads(raw))


class RedisNotifier:

    def __init__(self, redis_client: Redis, key_prefix: str = settings.QUEUE_KEY_PREFIX):
        self._redis = redis_client
        self.key = f"{key_prefix}:notifications"

    def notify(self, job) -> None:
        event = JobEvent.from_job(job)
        self._redis.rpush(self.key, event.to_json())
        logger.info(f"Notification queued: job {event.job_id} {event.status}")


class NotificationConsumer:

    DEDUP_TTL = 7 * 24 * 3600  # seconds a delivered (job_id, status) is remembered

    def __init__(
        self,
        redis_client: Redis,
        handler: Callable[[JobEvent], None],
        key_prefix: str = settings.QUEUE_KEY_PREFIX,
        block_timeout: int = settings.SUBSCRIBE_BLOCK_TIMEOUT,
    ):
        self._redis = redis_client
        self._handler = handler
        self._prefix = key_prefix
        self._block_timeout = block_timeout
        self.key = f"{key_prefix}:notifications"
        self.processing_key = f"{self.key}:processing"

    def _dedup_key(self, event: JobEvent) -> str:
        return f"{self._prefix}:delivered:{event.job_id}:{event.status}"

    def recover(self) -> int:
        """Move events a dead consumer left unacknowledged back onto the main list."""
        moved = 0
        while self._redis.lmove(self.processing_key, self.key, "RIGHT", "LEFT") is not None:
            moved += 1
        if moved:
            logger.warning(f"Recovered {moved} unacknowledged notification(s) from {self.processing_key}")
        return moved

    def poll(self) -> Optional[bool]:
        """
        Take one event and deliver it.

        Returns None if nothing arrived within block_timeout, otherwise what
        process() returned. When the handler raises, the event goes back on
        the main list before the exception propagates.
        """
        raw = self._redis.blmove(self.key, self.processing_key, self._block_timeout, "LEFT", "RIGHT")
        if raw is None:
            return None
        try:
            return self.process(raw)
        except Exception:
            self._requeue(raw)
            raise

    def process(self, raw) -> bool:
        """Deliver one raw event. Returns False for a duplicate or malformed event that was dropped."""
        try:
            event = JobEvent.from_json(raw)
        except (ValueError, TypeError) as e:
            logger.error(f"Dropping malformed notification {raw!r}: {e}")
            self._ack(raw)
            return False

        dedup_key = self._dedup_key(event)
        if self._redis.exists(dedup_key):
            logger.debug(f"Duplicate notification for job {event.job_id} {event.status} dropped")
            self._ack(raw)
            return False

        self._handler(event)
        self._redis.set(dedup_key, 1, ex=self.DEDUP_TTL)
        self._ack(raw)
        return True

    def run(self, stop_event: threading.Event) -> None:
        """Consume until stop_event is set. Failed deliveries are logged and retried later."""
        self.recover()
        while not stop_event.is_set():
            try:
                self.poll()
            except Exception as e:
                logger.error(f"Notification delivery failed, event requeued: {e}", exc_info=True)
                stop_event.wait(settings.RETRY_BACKOFF_BASE)

    def _ack(self, raw) -> None:
        self._redis.lrem(self.processing_key, 1, raw)

    def _requeue(self, raw) -> None:
        pipe = self._redis.pipeline(transaction=True)
        pipe.lrem(self.processing_key, 1, raw)
        pipe.rpush(self.key, raw)
        pipe.execute()
