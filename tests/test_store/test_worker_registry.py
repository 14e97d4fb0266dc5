"""Tests for the worker registry."""

from models.worker import Worker
from store.worker_registry import WorkerRegistry


def test_register_then_touch(session_factory, clock):
    registry = WorkerRegistry(session_factory, clock=clock)
    registry.register("builder-1:42", hostname="builder-1", target="arm64", pid=42, logical_cores=8)

    clock.advance(30)
    registry.touch("builder-1:42", current_job_id="abc")

    with session_factory() as session:
        worker = session.get(Worker, "builder-1:42")
    assert worker.target == "arm64"
    assert worker.logical_cores == 8
    assert worker.current_job_id == "abc"
    assert (worker.last_heartbeat_at - worker.registered_at).total_seconds() == 30


def test_register_again_refreshes_row(session_factory, clock):
    registry = WorkerRegistry(session_factory, clock=clock)
    registry.register("builder-1:42", hostname="builder-1", target="arm64", pid=42)
    registry.touch("builder-1:42", current_job_id="abc")

    registry.register("builder-1:42", hostname="builder-1", target="riscv64", pid=43, git_commit="deadbeef")

    with session_factory() as session:
        workers = session.query(Worker).all()
    assert len(workers) == 1
    assert workers[0].target == "riscv64"
    assert workers[0].git_commit == "deadbeef"
    assert workers[0].current_job_id is None


def test_touch_unregistered_worker_is_ignored(session_factory):
    registry = WorkerRegistry(session_factory)
    registry.touch("ghost")

    with session_factory() as session:
        assert session.query(Worker).count() == 0
