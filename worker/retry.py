"""
Retry with exponential backoff for transient infrastructure failures.

Redis restarting or Postgres failing over must not cost a worker its job.
Store and queue calls made by the agent are wrapped in with_backoff():

    attempt 1 fails → sleep base       (1s)
    attempt 2 fails → sleep base * 2   (2s)
    attempt 3 fails → sleep base * 4   (4s)
    ...                                (capped at RETRY_BACKOFF_MAX)

Retrying is safe because every store operation is idempotent for the worker
that made it: a repeated claim, heartbeat or complete by the lease owner
returns what the first call did, and a repeated release returns False.

Only connection-level errors are retried. Conflict, Rejected and anything
else propagate immediately.
"""

import logging
import time
from typing import Callable, TypeVar

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from sqlalchemy.exc import DisconnectionError, OperationalError

from config.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (
    RedisConnectionError,
    RedisTimeoutError,
    OperationalError,
    DisconnectionError,
)


def backoff_delay(attempt: int, base: float = settings.RETRY_BACKOFF_BASE,
                  cap: float = settings.RETRY_BACKOFF_MAX) -> float:
    """Delay before retry number `attempt` (1-based)."""
    return min(cap, base * (2 ** (attempt - 1)))


def with_backoff(
    fn: Callable[..., T],
    *args,
    max_tries: int = settings.RETRY_MAX_TRIES,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> T:
    """Call fn(*args, **kwargs), retrying transient errors up to max_tries times."""
    attempt = 1
    while True:
        try:
            return fn(*args, **kwargs)
        except TRANSIENT_ERRORS as e:
            if attempt >= max_tries:
                logger.error(f"{getattr(fn, '__name__', fn)} failed after {attempt} tries: {e}")
                raise
            delay = backoff_delay(attempt)
            logger.warning(
                f"{getattr(fn, '__name__', fn)} failed ({e}), "
                f"retrying in {delay:.1f}s ({attempt}/{max_tries})"
            )
            sleep(delay)
            attempt += 1
