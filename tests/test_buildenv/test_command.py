"""
Tests for the command build environment.

Uses tiny shell scripts in place of a real build tool.
"""

import json
import threading

from buildenv.command import CommandBuildEnvironment

PAYLOAD = {"packages": ["bash", "fish"], "git_ref": "stable", "build_flags": {}}


def _script(tmp_path, body):
    path = tmp_path / "build.sh"
    path.write_text("#!/bin/sh\n" + body + "\n")
    return f"sh {path}"


def test_exit_zero_marks_all_packages_built(tmp_path):
    command = _script(tmp_path, 'echo "building $@ at $BUILDFLEET_GIT_REF"')
    env = CommandBuildEnvironment(command=command, log_dir=str(tmp_path / "logs"), log_base_url="")

    outcome = env.execute(PAYLOAD, "job-1")

    assert outcome.exit_status == 0
    assert outcome.successful_packages == ["bash", "fish"]
    assert outcome.log_reference == str(tmp_path / "logs" / "job-1.log")
    log = (tmp_path / "logs" / "job-1.log").read_text()
    assert "building bash fish at stable" in log


def test_nonzero_exit_with_result_file(tmp_path):
    command = _script(
        tmp_path,
        'echo \'{"successful_packages": ["bash"], "failed_package": "fish"}\' > "$BUILDFLEET_RESULT_FILE"\n'
        "exit 3",
    )
    env = CommandBuildEnvironment(command=command, log_dir=str(tmp_path), log_base_url="https://buildit.example/logs/")

    outcome = env.execute(PAYLOAD, "job-2")

    assert outcome.exit_status == 3
    assert outcome.successful_packages == ["bash"]
    assert outcome.failed_package == "fish"
    assert outcome.log_reference == "https://buildit.example/logs/job-2.log"


def test_payload_exported_to_command(tmp_path):
    command = _script(tmp_path, 'echo "$BUILDFLEET_PAYLOAD" > "$BUILDFLEET_RESULT_FILE.payload"')
    env = CommandBuildEnvironment(command=command, log_dir=str(tmp_path), log_base_url="")

    env.execute(PAYLOAD, "job-3")

    exported = json.loads((tmp_path / "job-3.result.json.payload").read_text())
    assert exported == PAYLOAD


def test_unreadable_result_file_ignored(tmp_path):
    command = _script(tmp_path, 'echo "not json" > "$BUILDFLEET_RESULT_FILE"')
    env = CommandBuildEnvironment(command=command, log_dir=str(tmp_path), log_base_url="")

    outcome = env.execute(PAYLOAD, "job-4")

    assert outcome.exit_status == 0
    assert outcome.successful_packages == ["bash", "fish"]


def test_terminate_kills_process_group(tmp_path):
    command = _script(tmp_path, "sleep 30 &\nwait")
    env = CommandBuildEnvironment(command=command, log_dir=str(tmp_path), log_base_url="")
    threading.Timer(0.3, env.terminate).start()

    outcome = env.execute(PAYLOAD, "job-5")

    assert outcome.terminated
    assert outcome.exit_status != 0
    assert outcome.elapsed_sec < 10


def test_terminate_before_start(tmp_path):
    env = CommandBuildEnvironment(command="sleep 30", log_dir=str(tmp_path), log_base_url="")
    env.terminate()

    outcome = env.execute(PAYLOAD, "job-6")

    assert outcome.terminated
    assert outcome.exit_status is None


def test_rerun_does_not_inherit_previous_result_file(tmp_path):
    failing = _script(
        tmp_path,
        'echo \'{"failed_package": "bash"}\' > "$BUILDFLEET_RESULT_FILE"\n'
        "exit 1",
    )
    first = CommandBuildEnvironment(command=failing, log_dir=str(tmp_path / "logs"), log_base_url="")
    assert first.execute(PAYLOAD, "job-7").failed_package == "bash"

    passing = _script(tmp_path, "true")
    second = CommandBuildEnvironment(command=passing, log_dir=str(tmp_path / "logs"), log_base_url="")
    outcome = second.execute(PAYLOAD, "job-7")

    assert outcome.exit_status == 0
    assert outcome.failed_package is None
    assert outcome.successful_packages == ["bash", "fish"]
