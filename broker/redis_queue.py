"""
Job queue on Redis lists — one list per target.

    publish(target, job_id)  →  MULTI; LREM buildfleet:queue:<target> 0 <job_id>; RPUSH ...; EXEC
    subscribe(target)        →  BLPOP loop yielding job ids

Only job ids travel through Redis. The payload stays in the Job Store and the
worker reads it after winning the claim.

Delivery is at-least-once and best-effort FIFO per target:
- the lease monitor re-publishes QUEUED jobs nobody picked up; publish drops
  any copy still waiting, so an id sits in the list at most once, moved to
  the tail
- an id popped by a worker that then crashes is gone from the list, and the
  re-publish backstop brings it back

Neither matters for correctness because the claim in the Job Store is what
decides who builds a job. A duplicate notification just produces a Conflict.
"""

import logging
import threading
from typing import Iterator, Optional

from redis import Redis

from config.settings import settings

logger = logging.getLogger(__name__)


def queue_key(target: str, key_prefix: str = settings.QUEUE_KEY_PREFIX) -> str:
    return f"{key_prefix}:queue:{target}"


class RedisJobQueue:

    def __init__(self, redis_client: Redis, key_prefix: str = settings.QUEUE_KEY_PREFIX):
        self._redis = redis_client
        self._prefix = key_prefix

    def queue_key(self, target: str) -> str:
        return queue_key(target, self._prefix)

    def publish(self, target: str, job_id) -> None:
        key = self.queue_key(target)
        pipe = self._redis.pipeline(transaction=True)
        pipe.lrem(key, 0, str(job_id))
        pipe.rpush(key, str(job_id))
        pipe.execute()
        logger.debug(f"Published job {job_id} to {key}")

    def depth(self, target: str) -> int:
        return self._redis.llen(self.queue_key(target))

    def subscribe(
        self,
        target: str,
        stop_event: Optional[threading.Event] = None,
        block_timeout: int = settings.SUBSCRIBE_BLOCK_TIMEOUT,
        yield_idle: bool = False,
    ) -> Iterator[Optional[str]]:
        """
        Lazily yield job ids published for `target`.

        BLPOP blocks for up to `block_timeout` seconds so the loop can notice
        stop_event. With yield_idle=True a None is yielded on every empty
        timeout, letting the consumer do housekeeping between jobs.
        Calling subscribe() again after the generator is closed resumes from
        whatever is still in the list.
        """
        key = self.queue_key(target)
        while stop_event is None or not stop_event.is_set():
            item = self._redis.blpop(key, timeout=block_timeout)
            if item is None:
                if yield_idle:
                    yield None
                continue
            _, raw = item
            yield raw.decode() if isinstance(raw, bytes) else raw
