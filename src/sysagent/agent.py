"""System agent: schedules tasks and runs them when the scheduler fires."""

from __future__ import annotations

import logging
import time
from typing import Any

import aiosqlite

from sysagent.models import JobStatus
from sysagent.registry import TaskRegistry
from sysagent.tasks.base import TaskContext, record_failure

logger = logging.getLogger(__name__)


class SystemAgent:
    """
    Entry point for async system tasks.

    The agent owns no global state: build one per process with its
    collaborators and register handle_task() as the scheduler's dispatcher.

    Example:
        agent = SystemAgent(context, registry)
        context.scheduler.set_dispatcher(agent.handle_task)
        job_id = await agent.schedule_task("image_generation", {"prediction_id": "p1"})
    """

    def __init__(self, context: TaskContext, registry: TaskRegistry) -> None:
        self.context = context
        self.registry = registry

        logger.debug(
            "System agent task handlers loaded: %s", ", ".join(registry.task_types()) or "none"
        )

    @property
    def store(self):
        return self.context.store

    @property
    def scheduler(self):
        return self.context.scheduler

    def task_types(self) -> list[str]:
        return self.registry.task_types()

    async def schedule_task(
        self,
        task_type: str,
        params: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
    ) -> int | None:
        """
        Create a pending job for task_type and ask the scheduler to run it now.

        The task type is resolved when the job runs, not here, so types may be
        registered after scheduling.

        Args:
            task_type: Registered task type identifier.
            params: JSON-compatible parameters, passed unchanged to execute().
            context: Optional routing information stored as engine_data["context"].

        Returns:
            The new job id, or None if the job was not scheduled.
        """
        engine_data = {
            **(params or {}),
            "task_type": task_type,
            "scheduled_at": time.time(),
        }
        if context:
            engine_data["context"] = context

        label = task_type.replace("_", " ").capitalize()
        try:
            job_id = await self.store.create_job(engine_data, label=label, source="system")
        except (aiosqlite.Error, TypeError, ValueError):
            logger.exception(
                "Failed to create job for task '%s'", task_type,
                extra={"task_type": task_type},
            )
            return None

        if not await self.scheduler.schedule_once(0, job_id):
            await record_failure(self.store, job_id, "Failed to schedule task", task_type)
            return None

        logger.info(
            "Task scheduled: %s (job %s)", task_type, job_id,
            extra={"job_id": job_id, "task_type": task_type},
        )
        return job_id

    async def handle_task(self, job_id: int) -> None:
        """
        Run the task for a job. Registered as the scheduler's dispatcher.

        Never raises: every outcome is recorded on the job itself.
        """
        job = await self.store.get_job(job_id)
        if job is None:
            # Nothing to fail: the row is gone.
            logger.error("Job %s not found", job_id, extra={"job_id": job_id})
            return

        if job.status.is_final:
            logger.warning(
                "Job %s already %s; ignoring dispatch", job_id, job.status.value,
                extra={"job_id": job_id},
            )
            return

        task_type = job.task_type
        if not task_type:
            await record_failure(self.store, job_id, "No task type found", "")
            return

        factory = self.registry.resolve(task_type)
        if factory is None:
            await record_failure(self.store, job_id, f"Unknown task type: {task_type}", task_type)
            return

        await self.store.update_status(job_id, JobStatus.PROCESSING)

        try:
            task = factory(self.context)
            await task.execute(job_id, dict(job.engine_data))
        except Exception as e:
            logger.exception(
                "Task execution failed for job %s", job_id,
                extra={"job_id": job_id, "task_type": task_type},
            )
            current = await self.store.get_job(job_id)
            if current is not None and current.status.is_final:
                return
            await record_failure(
                self.store, job_id, f"Task execution exception: {e}", task_type
            )
