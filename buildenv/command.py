"""
Command build environment — runs the operator's build command in a subprocess.

The command line comes from BUILD_COMMAND and gets the package names
appended, e.g. BUILD_COMMAND="ciel build -i main" runs

    ciel build -i main bash fish

with these environment variables set:

    BUILDFLEET_JOB_ID        the job id
    BUILDFLEET_GIT_REF       payload["git_ref"]
    BUILDFLEET_PAYLOAD       the whole payload as JSON
    BUILDFLEET_RESULT_FILE   where the command may write a JSON summary

stdout and stderr go to <BUILD_LOG_DIR>/<job_id>.log. If the command writes the
result file, its "successful_packages", "failed_package" and
"artifact_reference" keys are copied into the outcome.

The command runs in its own session so terminate() can kill the whole
process group, not just the top-level shell.
"""

import contextlib
import json
import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from typing import Optional

from buildenv.base import AbstractBuildEnvironment, BuildOutcome
from config.settings import settings

logger = logging.getLogger(__name__)


class CommandBuildEnvironment(AbstractBuildEnvironment):

    TERMINATE_GRACE = 10.0  # seconds between SIGTERM and SIGKILL

    def __init__(
        self,
        command: str = settings.BUILD_COMMAND,
        log_dir: str = settings.BUILD_LOG_DIR,
        log_base_url: str = settings.BUILD_LOG_BASE_URL,
    ):
        self._command = shlex.split(command)
        self._log_dir = log_dir
        self._log_base_url = log_base_url
        self._process: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()
        self._terminated = False

    @property
    def kind(self) -> str:
        return "command"

    def execute(self, payload: dict, job_id: str) -> BuildOutcome:
        packages = list(payload.get("packages", []))
        os.makedirs(self._log_dir, exist_ok=True)
        log_path = os.path.join(self._log_dir, f"{job_id}.log")
        result_path = os.path.join(self._log_dir, f"{job_id}.result.json")
        # Left over from an earlier attempt of the same job
        with contextlib.suppress(FileNotFoundError):
            os.remove(result_path)

        env = {
            **os.environ,
            "BUILDFLEET_JOB_ID": job_id,
            "BUILDFLEET_GIT_REF": str(payload.get("git_ref", "")),
            "BUILDFLEET_PAYLOAD": json.dumps(payload),
            "BUILDFLEET_RESULT_FILE": result_path,
        }

        start = time.monotonic()
        with open(log_path, "wb") as log_file:
            with self._lock:
                if self._terminated:
                    return BuildOutcome(exit_status=None, terminated=True)
                self._process = subprocess.Popen(
                    self._command + packages,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    env=env,
                    start_new_session=True,
                )
            logger.info(f"Job {job_id}: started {shlex.join(self._command + packages)} (pid {self._process.pid})")
            exit_status = self._process.wait()

        outcome = BuildOutcome(
            exit_status=exit_status,
            log_reference=self._log_reference(log_path),
            elapsed_sec=round(time.monotonic() - start, 3),
            terminated=self._terminated,
        )
        self._read_result_file(result_path, outcome)
        if exit_status == 0 and not outcome.successful_packages and outcome.failed_package is None:
            outcome.successful_packages = packages
        return outcome

    def terminate(self) -> None:
        with self._lock:
            self._terminated = True
            process = self._process
        if process is None or process.poll() is not None:
            return

        logger.warning(f"Terminating build process group {process.pid}")
        try:
            os.killpg(process.pid, signal.SIGTERM)
            process.wait(timeout=self.TERMINATE_GRACE)
        except subprocess.TimeoutExpired:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass  # exited between poll() and killpg()

    def _log_reference(self, log_path: str) -> str:
        if self._log_base_url:
            return f"{self._log_base_url.rstrip('/')}/{os.path.basename(log_path)}"
        return log_path

    @staticmethod
    def _read_result_file(path: str, outcome: BuildOutcome) -> None:
        if not os.path.exists(path):
            return
        try:
            with open(path, "r", encoding="utf-8") as f:
                summary = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable build result file {path}: {e}")
            return
        outcome.successful_packages = list(summary.get("successful_packages", []))
        outcome.failed_package = summary.get("failed_package")
        outcome.artifact_reference = summary.get("artifact_reference")
