import enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class JobStatus(str, enum.Enum):
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    canceled = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def rank(self) -> int:
        return 0 if self is JobStatus.queued else 1 if self is JobStatus.running else 2


_TERMINAL = {JobStatus.succeeded, JobStatus.failed, JobStatus.canceled}

# Remote status vocabulary -> local lifecycle.
_REMOTE_STATUS = {
    "starting": JobStatus.queued,
    "queued": JobStatus.queued,
    "processing": JobStatus.running,
    "running": JobStatus.running,
    "succeeded": JobStatus.succeeded,
    "failed": JobStatus.failed,
    "canceled": JobStatus.canceled,
    "cancelled": JobStatus.canceled,
}


def parse_status(raw: str | None) -> JobStatus:
    """Unknown or missing remote statuses count as failures so the poll loop ends."""
    return _REMOTE_STATUS.get((raw or "").lower(), JobStatus.failed)


class Prediction(BaseModel):
    """A job on the remote prediction service, as last reported by it."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str | None = None
    output: list[Any] | str | None = None
    error: str | None = None

    @property
    def job_status(self) -> JobStatus:
        return parse_status(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.job_status.is_terminal

    @property
    def first_output(self) -> str | None:
        if isinstance(self.output, str):
            return self.output or None
        if self.output:
            return str(self.output[0])
        return None
