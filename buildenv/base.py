"""
Abstract base class for build environments.

The worker agent hands a job's payload to a build environment and waits.
What happens inside (container or chroot setup, dependency resolution, the
actual package build) is the environment's business; the agent only needs:

- execute(payload, job_id) → BuildOutcome, blocking until the build ends
- terminate(), callable from another thread at any moment, which makes a
  running execute() return promptly

Strategy pattern:
- AbstractBuildEnvironment = interface
- CommandBuildEnvironment, SimulatedBuildEnvironment = implementations
- registry.py = factory lookup
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass
class BuildOutcome:
    exit_status: Optional[int]
    log_reference: Optional[str] = None
    artifact_reference: Optional[str] = None
    successful_packages: list[str] = field(default_factory=list)
    failed_package: Optional[str] = None
    elapsed_sec: float = 0.0
    terminated: bool = False     # execute() returned because terminate() was called
    cause: Optional[str] = None

    def to_result(self) -> dict:
        """The JSON document stored as Job.result."""
        result = asdict(self)
        result.pop("terminated")
        return result


class AbstractBuildEnvironment(ABC):

    @abstractmethod
    def execute(self, payload: dict, job_id: str) -> BuildOutcome:
        """
        Run the build described by payload.

        Args:
            payload: the job's opaque payload (packages, git_ref, build_flags...)
            job_id: used to name logs and artifacts

        Returns:
            BuildOutcome. A non-zero exit_status is a failed build, not an exception.

        Raises:
            Any exception → the agent reports the job FAILED with
            cause "environment_error".
        """
        ...

    @abstractmethod
    def terminate(self) -> None:
        """Force a running execute() to stop. Must be safe to call at any time, from any thread."""
        ...

    @property
    @abstractmethod
    def kind(self) -> str:
        """Matches BuildEnvironmentKind (e.g., 'command', 'simulated')."""
        ...
