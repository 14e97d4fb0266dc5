"""
Simulated build environment.

The most useful environment for demos and tests because:
- You control exactly how long a build takes (build_flags.duration)
- You control whether it fails (build_flags.fail_probability)
- terminate() interrupts the "build" immediately, like killing a real one

Example payloads:
    {"packages": ["bash"], "git_ref": "stable", "build_flags": {"duration": 3.0}}
    {"packages": ["bash"], "git_ref": "stable", "build_flags": {"fail_probability": 1.0}}
"""

import random
import threading
import time

from buildenv.base import AbstractBuildEnvironment, BuildOutcome


class SimulatedBuildEnvironment(AbstractBuildEnvironment):

    def __init__(self):
        self._stop = threading.Event()

    @property
    def kind(self) -> str:
        return "simulated"

    def execute(self, payload: dict, job_id: str) -> BuildOutcome:
        flags = payload.get("build_flags", {})
        duration = float(flags.get("duration", 1.0))
        fail_probability = float(flags.get("fail_probability", 0.0))
        packages = list(payload.get("packages", []))

        start = time.monotonic()
        interrupted = self._stop.wait(duration)
        elapsed = round(time.monotonic() - start, 3)

        if interrupted:
            return BuildOutcome(exit_status=None, elapsed_sec=elapsed, terminated=True)

        if random.random() < fail_probability:
            return BuildOutcome(
                exit_status=1,
                log_reference=f"simulated://{job_id}",
                failed_package=packages[0] if packages else None,
                elapsed_sec=elapsed,
            )

        return BuildOutcome(
            exit_status=0,
            log_reference=f"simulated://{job_id}",
            successful_packages=packages,
            elapsed_sec=elapsed,
        )

    def terminate(self) -> None:
        self._stop.set()
