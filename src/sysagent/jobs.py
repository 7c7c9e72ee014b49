"""Job maintenance operations: lookups, summaries and stuck-job recovery."""

from __future__ import annotations

import logging
from typing import Any

from sysagent.errors import JobNotFoundError
from sysagent.models import Job, JobStatus, parse_status
from sysagent.store import SqliteJobStore

logger = logging.getLogger(__name__)

# Upper bound on processing jobs inspected by one recovery pass.
RECOVERY_SCAN_LIMIT = 1000


async def require_job(store: SqliteJobStore, job_id: int) -> Job:
    job = await store.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


async def summarize_jobs(store: SqliteJobStore) -> dict[str, int]:
    """Job counts keyed by base status, plus a total."""
    counts = await store.count_by_status()
    summary = {status.value: count for status, count in counts.items()}
    summary["total"] = sum(counts.values())
    return summary


async def recover_stuck_jobs(store: SqliteJobStore, *, dry_run: bool = False) -> dict[str, Any]:
    """
    Finish jobs left in processing that carry a job_status override.

    A job whose engine_data.job_status holds a final status (e.g. set by a
    step that died before the job was closed) is moved to that status.
    Anything else is reported as skipped.
    """
    stuck = [
        job for job in await store.list_jobs(status=JobStatus.PROCESSING, limit=RECOVERY_SCAN_LIMIT)
        if "job_status" in job.engine_data
    ]

    recovered = 0
    skipped = 0
    outcomes: list[dict[str, Any]] = []

    for job in stuck:
        target = job.engine_data.get("job_status")
        status, reason = parse_status(target if isinstance(target, str) else None)

        if not target or not status.is_final:
            skipped += 1
            outcomes.append({
                "job_id": job.id,
                "status": "skipped",
                "reason": f"Invalid or non-final status: {target if target else 'null'}",
            })
            continue

        if dry_run:
            recovered += 1
            outcomes.append({"job_id": job.id, "status": "would_recover", "target_status": target})
            continue

        if await store.update_status(job.id, status, reason):
            recovered += 1
            outcomes.append({"job_id": job.id, "status": "recovered", "target_status": target})
        else:
            skipped += 1
            outcomes.append({"job_id": job.id, "status": "skipped", "reason": "Database update failed"})

    if not stuck:
        message = "No stuck jobs found."
    elif dry_run:
        message = f"Dry run complete. Would recover {recovered} jobs, skip {skipped}."
    else:
        message = f"Recovery complete. Recovered: {recovered}, Skipped: {skipped}"

    if recovered and not dry_run:
        logger.info("Stuck jobs recovered: %d (skipped %d)", recovered, skipped)

    return {
        "success": True,
        "recovered": recovered,
        "skipped": skipped,
        "dry_run": dry_run,
        "jobs": outcomes,
        "message": message,
    }
