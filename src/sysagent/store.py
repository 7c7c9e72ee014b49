"""Job persistence: the JobStore port and its SQLite implementation."""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

import aiosqlite

from sysagent import db
from sysagent.models import Job, JobStatus, can_transition, format_status, parse_status

logger = logging.getLogger(__name__)


class JobStore(Protocol):
    """What the task engine needs from job persistence."""

    async def create_job(
        self, engine_data: dict[str, Any], *, label: str = "", source: str = "system"
    ) -> int: ...

    async def get_job(self, job_id: int) -> Job | None: ...

    async def update_status(
        self, job_id: int, status: JobStatus, reason: str | None = None
    ) -> bool: ...

    async def merge_engine_data(self, job_id: int, partial: dict[str, Any]) -> bool: ...

    async def compare_and_merge(
        self, job_id: int, partial: dict[str, Any], *, expected_attempts: int
    ) -> bool: ...


def job_from_row(row: dict) -> Job:
    status, reason = parse_status(row.get("status"))
    return Job(
        id=int(row["job_id"]),
        status=status,
        status_reason=reason,
        label=row.get("label") or "",
        source=row.get("source") or "system",
        engine_data=db.decode_engine_data(row.get("engine_data")),
        created_at=row.get("created_at") or 0.0,
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
        failed_at=row.get("failed_at"),
    )


class SqliteJobStore:
    """
    JobStore backed by a shared aiosqlite connection.

    Mutators return False for unknown job ids instead of raising.

    Example:
        conn = await db.init_db(":memory:")
        store = SqliteJobStore(conn)
        job_id = await store.create_job({"task_type": "image_generation"})
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn

    async def create_job(
        self,
        engine_data: dict[str, Any],
        *,
        label: str = "",
        source: str = "system",
    ) -> int:
        return await db.insert_job(
            self.conn,
            label=label,
            source=source,
            status=JobStatus.PENDING.value,
            engine_data=engine_data,
            created_at=time.time(),
        )

    async def get_job(self, job_id: int) -> Job | None:
        row = await db.get_job_row(self.conn, job_id)
        return job_from_row(row) if row else None

    async def update_status(
        self,
        job_id: int,
        status: JobStatus,
        reason: str | None = None,
    ) -> bool:
        """
        Move a job to a new status.

        Stamps started_at on the first move to processing and completed_at /
        failed_at on terminal moves. Backwards moves and moves out of a final
        status are refused.
        """
        row = await db.get_job_row(self.conn, job_id)
        if row is None:
            return False

        current, _ = parse_status(row.get("status"))
        if not can_transition(current, status):
            logger.warning(
                "Refusing status change for job %s: %s -> %s",
                job_id, current.value, status.value,
                extra={"job_id": job_id},
            )
            return False

        now = time.time()
        values: dict[str, Any] = {"status": format_status(status, reason)}
        if status is JobStatus.PROCESSING and not row.get("started_at"):
            values["started_at"] = now
        elif status is JobStatus.COMPLETED:
            values["completed_at"] = now
        elif status is JobStatus.FAILED:
            values["failed_at"] = now

        return await db.update_job_columns(self.conn, job_id, values)

    async def merge_engine_data(self, job_id: int, partial: dict[str, Any]) -> bool:
        return await db.merge_engine_data(self.conn, job_id, partial)

    async def compare_and_merge(
        self,
        job_id: int,
        partial: dict[str, Any],
        *,
        expected_attempts: int,
    ) -> bool:
        return await db.merge_engine_data(
            self.conn, job_id, partial, expected_attempts=expected_attempts
        )

    async def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        task_type: str | None = None,
        limit: int = 100,
    ) -> list[Job]:
        rows = await db.list_job_rows(
            self.conn,
            status=status.value if status else None,
            task_type=task_type,
            limit=limit,
        )
        return [job_from_row(row) for row in rows]

    async def count_by_status(self) -> dict[JobStatus, int]:
        counts = {status: 0 for status in JobStatus}
        async with self.conn.execute("SELECT status, COUNT(*) AS n FROM jobs GROUP BY status") as cursor:
            for row in await cursor.fetchall():
                status, _ = parse_status(row["status"])
                counts[status] += row["n"]
        return counts

    async def delete_jobs(self, status: JobStatus) -> int:
        return await db.delete_job_rows(self.conn, status.value)
