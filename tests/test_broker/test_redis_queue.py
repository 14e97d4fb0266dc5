"""Tests for the per-target Redis job queue."""

import threading

from broker.redis_queue import RedisJobQueue, queue_key


def test_publish_appends_to_target_list(queue, sync_redis):
    queue.publish("amd64", "job-1")
    queue.publish("amd64", "job-2")
    queue.publish("arm64", "job-3")

    assert sync_redis.lrange(queue_key("amd64"), 0, -1) == [b"job-1", b"job-2"]
    assert queue.depth("amd64") == 2
    assert queue.depth("arm64") == 1
    assert queue.depth("riscv64") == 0


def test_subscribe_yields_in_publish_order(queue):
    for i in range(3):
        queue.publish("amd64", f"job-{i}")

    received = []
    for job_id in queue.subscribe("amd64", block_timeout=1):
        received.append(job_id)
        if len(received) == 3:
            break

    assert received == ["job-0", "job-1", "job-2"]
    assert queue.depth("amd64") == 0


def test_subscribe_only_sees_its_target(queue):
    queue.publish("arm64", "arm-job")
    queue.publish("amd64", "amd-job")

    assert next(queue.subscribe("amd64", block_timeout=1)) == "amd-job"
    assert queue.depth("arm64") == 1


def test_subscribe_yields_none_when_idle(queue):
    stream = queue.subscribe("amd64", block_timeout=1, yield_idle=True)
    assert next(stream) is None


def test_subscribe_stops_on_event(queue):
    stop = threading.Event()
    stop.set()
    assert list(queue.subscribe("amd64", stop_event=stop, block_timeout=1)) == []


def test_key_prefix_is_configurable(sync_redis):
    queue = RedisJobQueue(sync_redis, key_prefix="staging")
    queue.publish("amd64", "job-1")

    assert queue.queue_key("amd64") == "staging:queue:amd64"
    assert sync_redis.llen("staging:queue:amd64") == 1


def test_republish_keeps_one_copy_at_the_tail(queue, sync_redis):
    queue.publish("amd64", "job-1")
    queue.publish("amd64", "job-2")
    queue.publish("amd64", "job-1")

    assert sync_redis.lrange(queue_key("amd64"), 0, -1) == [b"job-2", b"job-1"]
