"""
Error taxonomy for job dispatch.

The Job Store's contract outcomes (Conflict, Rejected, AlreadyTerminal) are
raised as exceptions; callers that expect them (a worker losing a claim race,
a front-end cancelling a finished job) catch the specific class.
"""


class BuildFleetError(Exception):
    """Base class for every error raised by the dispatch core."""


class InvalidTarget(BuildFleetError):
    """The target is not served by any known worker population."""

    def __init__(self, target: str, known: list[str] | None = None):
        self.target = target
        self.known = known or []
        detail = f"Unknown target: '{target}'"
        if self.known:
            detail += f". Available: {self.known}"
        super().__init__(detail)


class InvalidPayload(BuildFleetError):
    """The payload does not match the build payload schema."""


class JobNotFound(BuildFleetError):
    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class PipelineNotFound(JobNotFound):
    def __init__(self, pipeline_id):
        super().__init__(pipeline_id)
        self.args = (f"Pipeline {pipeline_id} not found",)


class Conflict(BuildFleetError):
    """Another worker holds a live lease. Expected under duplicate delivery; skip it."""

    def __init__(self, job_id, status: str | None = None):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Job {job_id} cannot be claimed (status={status})")


class Rejected(BuildFleetError):
    """The caller's lease is gone. A worker receiving this must abort the build."""

    def __init__(self, job_id, worker_id: str, reason: str = ""):
        self.job_id = job_id
        self.worker_id = worker_id
        self.reason = reason
        super().__init__(f"Job {job_id} rejected for worker {worker_id}: {reason}")


class AlreadyTerminal(BuildFleetError):
    def __init__(self, job_id, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Job {job_id} is already {status}")

