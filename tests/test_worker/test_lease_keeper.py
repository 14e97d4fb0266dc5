"""
Tests for the heartbeat thread that runs beside a build.

A stand-in store and build environment record what the keeper does, so
the decisions (keep going, abort, time out) are tested without real waits.
"""

import threading

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from store.errors import Rejected
from worker.lease_keeper import LeaseKeeper


class RecordingEnvironment:
    kind = "recording"

    def __init__(self):
        self.terminated = threading.Event()

    def execute(self, payload, job_id):
        raise NotImplementedError

    def terminate(self):
        self.terminated.set()


class ScriptedStore:
    """heartbeat() plays back a list of outcomes: None for success, or an exception."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.beats = 0

    def heartbeat(self, job_id, worker_id, lease_duration=None):
        self.beats += 1
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if outcome is not None:
            raise outcome


class FakeMonotonic:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _keeper(store, env, monotonic=None, **kwargs):
    params = dict(heartbeat_interval=1.0, lease_duration=10.0, build_timeout=3600.0)
    params.update(kwargs)
    return LeaseKeeper(store, "job-1", "worker-a", env, monotonic=monotonic or FakeMonotonic(), **params)


def test_interval_must_be_shorter_than_lease():
    with pytest.raises(ValueError):
        _keeper(ScriptedStore([]), RecordingEnvironment(), heartbeat_interval=10.0, lease_duration=10.0)


def test_successful_beat_keeps_build_running():
    env = RecordingEnvironment()
    keeper = _keeper(ScriptedStore([None]), env)

    assert keeper.beat() is True
    assert not keeper.lost.is_set()
    assert not env.terminated.is_set()


def test_rejected_beat_kills_build():
    env = RecordingEnvironment()
    keeper = _keeper(ScriptedStore([Rejected("job-1", "worker-a", "job is CANCELLED")]), env)

    assert keeper.beat() is False
    assert keeper.lost.is_set()
    assert env.terminated.is_set()


def test_transient_failures_tolerated_within_lease():
    env = RecordingEnvironment()
    clock = FakeMonotonic()
    keeper = _keeper(ScriptedStore([RedisConnectionError("down")] * 3), env, monotonic=clock)

    for _ in range(2):
        clock.now += 3
        assert keeper.beat() is True
    assert not env.terminated.is_set()

    # No successful heartbeat for a whole lease: it has expired by now
    clock.now += 5
    assert keeper.beat() is False
    assert keeper.lost.is_set()
    assert env.terminated.is_set()


def test_success_resets_silence_window():
    env = RecordingEnvironment()
    clock = FakeMonotonic()
    keeper = _keeper(
        ScriptedStore([RedisConnectionError("down"), None, RedisConnectionError("down")]),
        env,
        monotonic=clock,
    )

    clock.now += 8
    assert keeper.beat() is True
    clock.now += 1
    assert keeper.beat() is True
    clock.now += 8
    assert keeper.beat() is True
    assert not keeper.lost.is_set()


def test_build_timeout_terminates_but_keeps_lease():
    env = RecordingEnvironment()
    store = ScriptedStore([])
    keeper = LeaseKeeper(
        store, "job-1", "worker-a", env,
        heartbeat_interval=0.05, lease_duration=5.0, build_timeout=0.1,
    )

    keeper.start()
    assert env.terminated.wait(5)
    keeper.stop()

    assert keeper.timed_out.is_set()
    assert not keeper.lost.is_set()
    assert store.beats >= 1


def test_heartbeats_on_interval_until_stopped():
    store = ScriptedStore([])
    keeper = LeaseKeeper(
        store, "job-1", "worker-a", RecordingEnvironment(),
        heartbeat_interval=0.02, lease_duration=5.0, build_timeout=3600.0,
    )

    keeper.start()
    threading.Event().wait(0.2)
    keeper.stop()

    assert store.beats >= 3
