from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from .app_logging import LOGGER_NAME, log_with_fields
from .config import DEFAULT_CONCURRENCY_LIMIT
from .eras import eras_for, parse_direction
from .executor import JobExecutor
from .models import Direction, Job, JobStatus, StatusChange
from .pool import WorkerPool
from .registry import JobRegistry, StatusListener
from .transformer import ImageTransformer


class PreconditionError(RuntimeError):
    pass


class RetryRejected(RuntimeError):
    def __init__(self, job_id: str, status: JobStatus) -> None:
        self.job_id = job_id
        self.status = status
        super().__init__(f"cannot retry {job_id!r} while it is {status.value}")


class Aggregator(Protocol):
    async def compose_page(self, images: dict[str, Any], expected_ids: Iterable[str]) -> Any: ...


@dataclass(slots=True, eq=False)
class Run:
    direction: Direction
    source: Any
    job_ids: tuple[str, ...]
    registry: JobRegistry
    generated: bool = False
    retry_tasks: set[asyncio.Task[Job]] = field(default_factory=set)

    def jobs(self) -> dict[str, Job]:
        return self.registry.snapshot()


def is_complete(run: Run | None) -> bool:
    if run is None or not run.job_ids:
        return False
    jobs = run.registry.snapshot()
    return all(jobs[job_id].status is JobStatus.DONE for job_id in run.job_ids)


def not_ready_ids(run: Run) -> list[str]:
    jobs = run.registry.snapshot()
    return [job_id for job_id in run.job_ids if jobs[job_id].status is not JobStatus.DONE]


class EraScheduler:
    """Owns the active run: bulk generation, per-era retries and the album gate.

    Status changes of the active run are delivered to subscribers as
    ``StatusChange`` events in commit order per job; across jobs the order is
    whatever order the transformer calls finish in.
    """

    def __init__(
        self,
        transformer: ImageTransformer,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
        logger: logging.Logger | None = None,
    ) -> None:
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        self.transformer = transformer
        self.concurrency_limit = concurrency_limit
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self._run: Run | None = None
        self._executor: JobExecutor | None = None
        self._listeners: list[StatusListener] = []

    @property
    def run(self) -> Run | None:
        return self._run

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start_run(self, direction: str | Direction, source: Any) -> Run:
        resolved = parse_direction(direction)
        if self._run is not None:
            log_with_fields(
                self.logger,
                logging.INFO,
                "run_replaced",
                direction=self._run.direction.value,
                outstanding_retries=len(self._run.retry_tasks),
            )
        registry = JobRegistry(self.logger)
        registry.initialize(eras_for(resolved))
        run = Run(direction=resolved, source=source, job_ids=registry.job_ids, registry=registry)
        registry.subscribe(lambda change: self._publish(run, change))
        self._run = run
        self._executor = JobExecutor(registry, self.transformer, resolved, source, self.logger)
        log_with_fields(
            self.logger,
            logging.INFO,
            "run_started",
            direction=resolved.value,
            jobs=list(run.job_ids),
        )
        return run

    def reset(self) -> None:
        self._run = None
        self._executor = None

    async def generate(self) -> dict[str, Job]:
        run, executor = self._require_run()
        if run.generated:
            raise PreconditionError("bulk generation already started for this run")
        run.generated = True
        pool = WorkerPool(executor, self.concurrency_limit, self.logger)
        await pool.run(run.job_ids)
        return run.registry.snapshot()

    async def run_batch(self, direction: str | Direction, source: Any) -> dict[str, Job]:
        self.start_run(direction, source)
        return await self.generate()

    def retry(self, job_id: str) -> asyncio.Task[Job]:
        run, executor = self._require_run()
        current = run.registry.get(job_id)
        if current.status in (JobStatus.PENDING, JobStatus.IN_PROGRESS):
            log_with_fields(
                self.logger,
                logging.WARNING,
                "retry_rejected",
                job_id=job_id,
                status=current.status.value,
            )
            raise RetryRejected(job_id, current.status)

        # resolved before the claim so a missing loop leaves the job untouched
        loop = asyncio.get_running_loop()
        executor.claim(job_id)
        log_with_fields(
            self.logger,
            logging.INFO,
            "retry_requested",
            job_id=job_id,
            previous=current.status.value,
        )
        task = loop.create_task(executor.complete(job_id), name=f"retry:{job_id}")
        run.retry_tasks.add(task)
        task.add_done_callback(run.retry_tasks.discard)
        return task

    async def wait_for_retries(self) -> None:
        if self._run is None:
            return
        while self._run.retry_tasks:
            await asyncio.gather(*list(self._run.retry_tasks))

    def is_complete(self) -> bool:
        return is_complete(self._run)

    def snapshot(self) -> dict[str, Job]:
        if self._run is None:
            return {}
        return self._run.registry.snapshot()

    def failed_ids(self) -> list[str]:
        return [job_id for job_id, job in self.snapshot().items() if job.status is JobStatus.ERROR]

    async def compose_album(self, aggregator: Aggregator) -> Any:
        run, _ = self._require_run()
        if not is_complete(run):
            waiting = not_ready_ids(run)
            log_with_fields(self.logger, logging.WARNING, "album_not_ready", waiting=waiting)
            raise PreconditionError(f"album not ready, still waiting on: {', '.join(waiting)}")
        jobs = run.registry.snapshot()
        images = {job_id: jobs[job_id].result for job_id in run.job_ids}
        album = await aggregator.compose_page(images, set(run.job_ids))
        log_with_fields(self.logger, logging.INFO, "album_composed", album=str(album), images=len(images))
        return album

    def _require_run(self) -> tuple[Run, JobExecutor]:
        if self._run is None or self._executor is None:
            raise PreconditionError("no active run; call start_run first")
        return self._run, self._executor

    def _publish(self, run: Run, change: StatusChange) -> None:
        if run is not self._run:
            return
        for listener in list(self._listeners):
            listener(change)
