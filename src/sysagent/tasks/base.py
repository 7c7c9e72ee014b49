"""Abstract base class for all system tasks and the shared retry protocol."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from sysagent.config import Settings
from sysagent.models import JobStatus, RetryState

if TYPE_CHECKING:
    from sysagent.ports import ContentRepository, LLMClient
    from sysagent.scheduler import Scheduler
    from sysagent.store import JobStore

logger = logging.getLogger(__name__)


@dataclass
class TaskContext:
    """Collaborators shared by every task instance."""

    store: JobStore
    scheduler: Scheduler
    settings: Settings
    http: httpx.AsyncClient | None = None
    llm: LLMClient | None = None
    content: ContentRepository | None = None


async def record_failure(store: JobStore, job_id: int, reason: str, task_type: str) -> bool:
    """
    Merge error details into engine_data and mark the job failed.

    Returns False if the job does not exist.
    """
    found = await store.merge_engine_data(
        job_id,
        {"error": reason, "failed_at": time.time(), "task_type": task_type},
    )
    if found:
        await store.update_status(job_id, JobStatus.FAILED, reason)

    logger.error(
        "Task failed for job %s: %s", job_id, reason,
        extra={"job_id": job_id, "task_type": task_type},
    )
    return found


class SystemTask(ABC):
    """
    One kind of async work, identified by a stable task type.

    execute() must end every invocation in exactly one of complete_job(),
    fail_job() or reschedule(). Returning without calling one leaves the job
    in processing with nothing scheduled to wake it up.

    Example:
        class PingTask(SystemTask):
            task_type = "ping"

            async def execute(self, job_id, params):
                await self.complete_job(job_id, {"pong": True})
    """

    task_type: str = ""

    def __init__(self, context: TaskContext) -> None:
        self.context = context

    @property
    def store(self) -> JobStore:
        return self.context.store

    @property
    def scheduler(self) -> Scheduler:
        return self.context.scheduler

    @property
    def settings(self) -> Settings:
        return self.context.settings

    @abstractmethod
    async def execute(self, job_id: int, params: dict[str, Any]) -> None:
        """Run the task once for a job. params is the job's engine_data."""
        ...

    def get_task_type(self) -> str:
        return self.task_type

    # --- Terminal helpers ---

    async def complete_job(self, job_id: int, result: dict[str, Any]) -> None:
        """Merge result into engine_data and mark the job completed."""
        await self.store.merge_engine_data(job_id, result)
        await self.store.update_status(job_id, JobStatus.COMPLETED)

        logger.info(
            "Task completed for job %s", job_id,
            extra={"job_id": job_id, "task_type": self.get_task_type()},
        )

    async def fail_job(self, job_id: int, reason: str) -> None:
        """Record the error in engine_data and mark the job failed."""
        await record_failure(self.store, job_id, reason, self.get_task_type())

    async def reschedule(self, job_id: int, delay_seconds: int | None = None) -> None:
        """
        Run this job again after delay_seconds, within the attempt budget.

        Each call counts one attempt. Once attempts would exceed max_attempts
        (engine_data, else the configured default) the job fails instead.
        """
        if delay_seconds is None:
            delay_seconds = self.settings.default_retry_delay

        job = await self.store.get_job(job_id)
        if job is None:
            await self.fail_job(job_id, "Job not found for rescheduling")
            return

        retry = job.retry
        attempts = retry.attempts + 1
        max_attempts = retry.max_attempts
        if max_attempts is None:
            max_attempts = self.settings.default_max_attempts

        if attempts > max_attempts:
            await self.fail_job(job_id, f"Task exceeded maximum attempts ({max_attempts})")
            return

        if not self.scheduler.available:
            await self.fail_job(job_id, "Scheduler not available for rescheduling")
            return

        update = RetryState(attempts=attempts, last_attempt=time.time()).to_engine_data()
        stored = await self.store.compare_and_merge(
            job_id, update, expected_attempts=retry.attempts
        )
        if not stored:
            current = await self.store.get_job(job_id)
            if current is not None and (
                current.status.is_final or current.retry.attempts != retry.attempts
            ):
                # Another invocation of this job already counted this attempt.
                logger.warning(
                    "Attempt counter for job %s changed concurrently; not rescheduling", job_id,
                    extra={"job_id": job_id, "task_type": self.get_task_type()},
                )
                return

            await self.fail_job(job_id, "Could not record retry attempt")
            return

        if not await self.scheduler.schedule_once(delay_seconds, job_id):
            await self.fail_job(job_id, "Scheduler not available for rescheduling")
            return

        await self.store.update_status(job_id, JobStatus.PROCESSING)

        logger.debug(
            "Task rescheduled for job %s (attempt %s/%s) in %ss",
            job_id, attempts, max_attempts, delay_seconds,
            extra={"job_id": job_id, "task_type": self.get_task_type()},
        )

    # --- Shared helpers ---

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send an HTTP request with the shared client, or a one-off client if none is set."""
        if self.context.http is not None:
            return await self.context.http.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
            return await client.request(method, url, **kwargs)

    async def ensure_max_attempts(self, job_id: int, params: dict[str, Any], max_attempts: int) -> None:
        """Write a task-specific attempt ceiling once, before the first poll."""
        if params.get("max_attempts") is None:
            await self.store.merge_engine_data(job_id, {"max_attempts": max_attempts})
            params["max_attempts"] = max_attempts
