"""Job maintenance operations."""

import pytest

from sysagent.errors import JobNotFoundError
from sysagent.jobs import recover_stuck_jobs, require_job, summarize_jobs
from sysagent.models import JobStatus


async def processing_job(store, **engine_data):
    job_id = await store.create_job(engine_data)
    await store.update_status(job_id, JobStatus.PROCESSING)
    return job_id


class TestRequireJob:
    """Test looking up a job that must exist."""

    async def test_found(self, store):
        """Test an existing job is returned."""
        job_id = await store.create_job({})
        assert (await require_job(store, job_id)).id == job_id

    async def test_missing(self, store):
        """Test a missing job raises JobNotFoundError."""
        with pytest.raises(JobNotFoundError, match="Job 5 not found"):
            await require_job(store, 5)


class TestSummary:
    """Test job counts by status."""

    async def test_counts(self, store):
        """Test every status is counted along with the total."""
        await store.create_job({})
        job_id = await store.create_job({})
        await store.update_status(job_id, JobStatus.FAILED, "x")

        summary = await summarize_jobs(store)
        assert summary["pending"] == 1
        assert summary["failed"] == 1
        assert summary["completed"] == 0
        assert summary["total"] == 2


class TestRecoverStuckJobs:
    """Test recovering jobs stuck in processing."""

    async def test_nothing_stuck(self, store):
        """Test nothing is recovered without a job_status override."""
        await processing_job(store)
        result = await recover_stuck_jobs(store)
        assert result["recovered"] == 0
        assert result["message"] == "No stuck jobs found."

    async def test_recovers_final_override(self, store):
        """Test a final job_status is applied with its reason."""
        done = await processing_job(store, job_status="completed")
        broken = await processing_job(store, job_status="failed - upstream gone")

        result = await recover_stuck_jobs(store)

        assert result["recovered"] == 2
        assert (await store.get_job(done)).status is JobStatus.COMPLETED
        job = await store.get_job(broken)
        assert job.status is JobStatus.FAILED
        assert job.status_reason == "upstream gone"

    async def test_skips_non_final(self, store):
        """Test non-final overrides are skipped."""
        job_id = await processing_job(store, job_status="processing")
        result = await recover_stuck_jobs(store)

        assert result["skipped"] == 1
        assert result["jobs"] == [{
            "job_id": job_id,
            "status": "skipped",
            "reason": "Invalid or non-final status: processing",
        }]
        assert (await store.get_job(job_id)).status is JobStatus.PROCESSING

    async def test_dry_run_changes_nothing(self, store):
        """Test a dry run reports without writing."""
        job_id = await processing_job(store, job_status="completed")
        result = await recover_stuck_jobs(store, dry_run=True)

        assert result["jobs"][0]["status"] == "would_recover"
        assert result["message"] == "Dry run complete. Would recover 1 jobs, skip 0."
        assert (await store.get_job(job_id)).status is JobStatus.PROCESSING
