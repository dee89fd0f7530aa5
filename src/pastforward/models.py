from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)


class Direction(str, Enum):
    PAST = "past"
    FUTURE = "future"


@dataclass(slots=True, frozen=True)
class Job:
    job_id: str
    status: JobStatus
    updated_at: str
    result: Any = None
    error_message: str | None = None
    attempt_count: int = 0

    def __post_init__(self) -> None:
        if self.status is JobStatus.DONE:
            if self.result is None or self.error_message is not None:
                raise ValueError(f"done job {self.job_id!r} must carry a result and no error")
        elif self.status is JobStatus.ERROR:
            if self.error_message is None or self.result is not None:
                raise ValueError(f"errored job {self.job_id!r} must carry a message and no result")
        elif self.result is not None or self.error_message is not None:
            raise ValueError(f"{self.status.value} job {self.job_id!r} cannot carry a result or error")


@dataclass(slots=True, frozen=True)
class StatusChange:
    job_id: str
    previous: JobStatus
    job: Job

    @property
    def status(self) -> JobStatus:
        return self.job.status
