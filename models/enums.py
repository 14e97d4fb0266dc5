"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("QUEUED", not "JobStatus.QUEUED")
- They work as SQLAlchemy column values
- They work as FastAPI query parameters
"""

import enum


class JobStatus(str, enum.Enum):
    QUEUED = "QUEUED"          # persisted, waiting for a worker of its target
    CLAIMED = "CLAIMED"        # a worker holds the lease, build not started yet
    RUNNING = "RUNNING"        # first heartbeat arrived, build environment executing
    SUCCEEDED = "SUCCEEDED"    # build finished with exit status 0
    FAILED = "FAILED"          # build finished non-zero, or timed out
    CANCELLED = "CANCELLED"    # cancelled by a front-end
    LOST = "LOST"              # lease lost max_attempts times, needs an operator


# Statuses holding a lease
LEASED_STATUSES = (JobStatus.CLAIMED, JobStatus.RUNNING)

# No transition leaves these
TERMINAL_STATUSES = (
    JobStatus.SUCCEEDED,
    JobStatus.FAILED,
    JobStatus.CANCELLED,
    JobStatus.LOST,
)


class BuildEnvironmentKind(str, enum.Enum):
    COMMAND = "command"        # operator-supplied command line (ciel, autobuild, ...)
    SIMULATED = "simulated"    # sleeps and optionally fails, for demos and tests


class FailureCause(str, enum.Enum):
    BUILD_FAILED = "build_failed"
    TIMEOUT = "timeout"
    ENVIRONMENT_ERROR = "environment_error"
