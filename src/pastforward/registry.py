from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from .app_logging import LOGGER_NAME, log_with_fields
from .models import Job, JobStatus, StatusChange
from .utils import utc_now_iso

StatusListener = Callable[[StatusChange], None]

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.IN_PROGRESS}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.DONE, JobStatus.ERROR}),
    JobStatus.DONE: frozenset({JobStatus.IN_PROGRESS}),
    JobStatus.ERROR: frozenset({JobStatus.IN_PROGRESS}),
}


class InvalidTransition(RuntimeError):
    pass


class JobRegistry:
    """Authoritative status record for every job of one run.

    Jobs are immutable values swapped under a lock, so readers on any thread see
    either the previous or the next job, never a mix of both.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self._lock = threading.Lock()
        self._job_ids: tuple[str, ...] = ()
        self._jobs: dict[str, Job] = {}
        self._listeners: list[StatusListener] = []

    @property
    def job_ids(self) -> tuple[str, ...]:
        return self._job_ids

    def __len__(self) -> int:
        return len(self._job_ids)

    def initialize(self, job_ids: Iterable[str]) -> None:
        ids = tuple(job_ids)
        if len(set(ids)) != len(ids):
            raise ValueError(f"job ids must be unique: {list(ids)}")
        now = utc_now_iso()
        jobs = {job_id: Job(job_id=job_id, status=JobStatus.PENDING, updated_at=now) for job_id in ids}
        with self._lock:
            self._job_ids = ids
            self._jobs = jobs

    def get(self, job_id: str) -> Job:
        with self._lock:
            try:
                return self._jobs[job_id]
            except KeyError:
                raise KeyError(f"unknown job id: {job_id}") from None

    def snapshot(self) -> dict[str, Job]:
        with self._lock:
            return {job_id: self._jobs[job_id] for job_id in self._job_ids}

    def statuses(self) -> dict[str, JobStatus]:
        return {job_id: job.status for job_id, job in self.snapshot().items()}

    def set_status(self, job_id: str, status: JobStatus, payload: Any = None) -> Job:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise KeyError(f"unknown job id: {job_id}")
            if status not in ALLOWED_TRANSITIONS[current.status]:
                raise InvalidTransition(
                    f"job {job_id!r} cannot move from {current.status.value} to {status.value}"
                )
            if status is JobStatus.IN_PROGRESS:
                updated = Job(
                    job_id=job_id,
                    status=status,
                    updated_at=utc_now_iso(),
                    attempt_count=current.attempt_count + 1,
                )
            elif status is JobStatus.DONE:
                updated = Job(
                    job_id=job_id,
                    status=status,
                    updated_at=utc_now_iso(),
                    result=payload,
                    attempt_count=current.attempt_count,
                )
            else:
                updated = Job(
                    job_id=job_id,
                    status=status,
                    updated_at=utc_now_iso(),
                    error_message=str(payload) if payload is not None else "",
                    attempt_count=current.attempt_count,
                )
            self._jobs[job_id] = updated
            listeners = list(self._listeners)

        change = StatusChange(job_id=job_id, previous=current.status, job=updated)
        for listener in listeners:
            try:
                listener(change)
            except Exception as exc:  # the write stays committed
                log_with_fields(
                    self.logger,
                    logging.ERROR,
                    "status_listener_failed",
                    job_id=job_id,
                    status=updated.status.value,
                    error=str(exc),
                )
        return updated

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe
