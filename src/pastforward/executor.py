from __future__ import annotations

import logging
from os import PathLike
from typing import Any

from .app_logging import log_with_fields
from .eras import build_prompt
from .models import Direction, Job, JobStatus
from .registry import JobRegistry
from .transformer import ImageTransformer, TransformError

UNKNOWN_ERROR_MESSAGE = "An unknown error occurred."
MAX_LOGGED_RESULT_CHARS = 200


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or UNKNOWN_ERROR_MESSAGE


def describe_result(result: Any) -> str:
    """Short form of a transformer result for logs; image payloads are never logged."""
    if isinstance(result, (bytes, bytearray, memoryview)):
        return f"<{len(result)} bytes>"
    if isinstance(result, (str, PathLike)):
        text = str(result)
        if len(text) > MAX_LOGGED_RESULT_CHARS:
            return f"{text[:MAX_LOGGED_RESULT_CHARS]}... ({len(text)} chars)"
        return text
    return f"<{type(result).__name__}>"


class JobExecutor:
    """Drives one dispatch of one era: in_progress, then exactly one of done or error."""

    def __init__(
        self,
        registry: JobRegistry,
        transformer: ImageTransformer,
        direction: Direction,
        source: Any,
        logger: logging.Logger,
    ) -> None:
        self.registry = registry
        self.transformer = transformer
        self.direction = direction
        self.source = source
        self.logger = logger

    async def execute(self, job_id: str) -> Job:
        self.claim(job_id)
        return await self.complete(job_id)

    def claim(self, job_id: str) -> Job:
        job = self.registry.set_status(job_id, JobStatus.IN_PROGRESS)
        log_with_fields(
            self.logger,
            logging.INFO,
            "job_dispatched",
            job_id=job_id,
            attempt=job.attempt_count,
        )
        return job

    async def complete(self, job_id: str) -> Job:
        """Call the transformer for a claimed job and record the outcome."""
        prompt = build_prompt(self.direction, job_id)
        try:
            result = await self.transformer.transform(self.source, prompt, job_id)
            if result is None:
                raise TransformError(f"transformer returned no image for {job_id}")
        except TransformError as exc:
            message = describe_error(exc)
            log_with_fields(self.logger, logging.WARNING, "job_failed", job_id=job_id, error=message)
            return self.registry.set_status(job_id, JobStatus.ERROR, message)
        except Exception as exc:
            message = describe_error(exc)
            log_with_fields(
                self.logger,
                logging.ERROR,
                "job_failed",
                exc_info=True,
                job_id=job_id,
                error=message,
            )
            return self.registry.set_status(job_id, JobStatus.ERROR, message)

        log_with_fields(self.logger, logging.INFO, "job_done", job_id=job_id, result=describe_result(result))
        return self.registry.set_status(job_id, JobStatus.DONE, result)
