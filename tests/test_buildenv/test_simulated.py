"""Tests for the simulated build environment and the environment registry."""

import threading

import pytest

from buildenv.command import CommandBuildEnvironment
from buildenv.registry import create_build_environment
from buildenv.simulated import SimulatedBuildEnvironment


def test_success():
    env = SimulatedBuildEnvironment()
    outcome = env.execute({"packages": ["bash"], "build_flags": {"duration": 0.01}}, "job-1")

    assert outcome.exit_status == 0
    assert outcome.successful_packages == ["bash"]
    assert outcome.log_reference == "simulated://job-1"
    assert not outcome.terminated


def test_forced_failure():
    env = SimulatedBuildEnvironment()
    payload = {"packages": ["bash", "fish"], "build_flags": {"duration": 0.01, "fail_probability": 1.0}}

    outcome = env.execute(payload, "job-1")

    assert outcome.exit_status == 1
    assert outcome.failed_package == "bash"
    assert outcome.successful_packages == []


def test_terminate_interrupts_build():
    env = SimulatedBuildEnvironment()
    threading.Timer(0.1, env.terminate).start()

    outcome = env.execute({"packages": ["bash"], "build_flags": {"duration": 30}}, "job-1")

    assert outcome.terminated
    assert outcome.exit_status is None
    assert outcome.elapsed_sec < 10


def test_result_document_omits_terminated_flag():
    env = SimulatedBuildEnvironment()
    result = env.execute({"packages": ["bash"], "build_flags": {"duration": 0}}, "job-1").to_result()

    assert "terminated" not in result
    assert set(result) == {
        "exit_status", "log_reference", "artifact_reference", "successful_packages",
        "failed_package", "elapsed_sec", "cause",
    }


def test_registry_returns_fresh_instances():
    first = create_build_environment("simulated")
    second = create_build_environment("simulated")

    assert isinstance(first, SimulatedBuildEnvironment)
    assert first is not second
    assert isinstance(create_build_environment("command"), CommandBuildEnvironment)


def test_registry_rejects_unknown_kind():
    with pytest.raises(ValueError, match="Unknown build environment"):
        create_build_environment("docker")
