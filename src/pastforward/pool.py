from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Iterable

from .app_logging import log_with_fields
from .executor import JobExecutor


class WorkerPool:
    """Fixed number of workers draining one shared FIFO of job ids.

    Jobs are dispatched in queue order; each worker finishes its job before it
    takes the next one, so at most ``concurrency_limit`` jobs are in flight.
    """

    def __init__(self, executor: JobExecutor, concurrency_limit: int, logger: logging.Logger) -> None:
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        self.executor = executor
        self.concurrency_limit = concurrency_limit
        self.logger = logger

    async def run(self, job_ids: Iterable[str]) -> list[str]:
        queue: deque[str] = deque(job_ids)
        dispatched: list[str] = []
        log_with_fields(
            self.logger,
            logging.INFO,
            "pool_started",
            jobs=len(queue),
            concurrency_limit=self.concurrency_limit,
        )

        async def worker() -> None:
            while queue:
                job_id = queue.popleft()
                dispatched.append(job_id)
                await self.executor.execute(job_id)

        await asyncio.gather(*(worker() for _ in range(self.concurrency_limit)))

        log_with_fields(self.logger, logging.INFO, "pool_finished", dispatched=len(dispatched))
        return dispatched
