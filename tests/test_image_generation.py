"""Replicate prediction polling."""

import dataclasses

import httpx
import pytest

from sysagent import db
from sysagent.models import JobStatus
from sysagent.tasks.image_generation import ImageGenerationTask, extract_image_url

from .fakes import Recorder, mock_http


def prediction(status, **extra):
    return httpx.Response(200, json={"id": "p1", "status": status, **extra})


@pytest.fixture
def make_task(context):
    def make(*responses):
        recorder = Recorder(*responses)
        task = ImageGenerationTask(dataclasses.replace(context, http=mock_http(recorder)))
        return task, recorder
    return make


async def make_job(store, **params):
    engine_data = {"task_type": "image_generation", "prediction_id": "p1", "api_key": "k", **params}
    job_id = await store.create_job(engine_data)
    await store.update_status(job_id, JobStatus.PROCESSING)
    return job_id


async def run(task, store, job_id):
    job = await store.get_job(job_id)
    await task.execute(job_id, dict(job.engine_data))
    return await store.get_job(job_id)


class TestExtractImageUrl:
    """Test reading the image URL from prediction output."""

    def test_string(self):
        """Test a string output is the URL."""
        assert extract_image_url("https://img/x.png") == "https://img/x.png"

    def test_list(self):
        """Test the first item of a list output is used."""
        assert extract_image_url(["https://img/a.png", "https://img/b.png"]) == "https://img/a.png"

    def test_empty(self):
        """Test empty output has no URL."""
        assert extract_image_url([]) is None
        assert extract_image_url(None) is None
        assert extract_image_url("") is None


class TestPolling:
    """Test polling an unfinished prediction."""

    async def test_processing_reschedules(self, make_task, store, conn):
        """Test a processing prediction is polled again in 5 seconds."""
        task, recorder = make_task(prediction("processing"))
        job_id = await make_job(store)

        job = await run(task, store, job_id)

        assert job.status is JobStatus.PROCESSING
        assert job.retry.attempts == 1
        assert job.retry.max_attempts == 24

        [action] = await db.list_actions(conn, job_id=job_id)
        assert action["run_at"] - action["created_at"] == pytest.approx(5)

        request = recorder.requests[0]
        assert request.method == "GET"
        assert str(request.url) == "https://api.replicate.com/v1/predictions/p1"
        assert request.headers["Authorization"] == "Token k"

    async def test_starting_reschedules(self, make_task, store):
        """Test a starting prediction is polled again."""
        task, _ = make_task(prediction("starting"))
        job_id = await make_job(store)
        assert (await run(task, store, job_id)).retry.attempts == 1

    async def test_gives_up_after_24_polls(self, make_task, store, conn):
        """Test the job fails after 24 polls."""
        task, _ = make_task(prediction("processing"))
        job_id = await make_job(store)

        for _ in range(24):
            job = await run(task, store, job_id)
            assert job.status is JobStatus.PROCESSING

        job = await run(task, store, job_id)
        assert job.status is JobStatus.FAILED
        assert "exceeded maximum attempts (24)" in job.error
        assert len(await db.list_actions(conn, job_id=job_id)) == 24

    async def test_uses_configured_api_key(self, make_task, store):
        """Test the configured key is used when the job has none."""
        task, recorder = make_task(prediction("processing"))
        job_id = await make_job(store, api_key="")

        await run(task, store, job_id)
        assert recorder.requests[0].headers["Authorization"] == "Token r8_test"


class TestOutcomes:
    """Test final prediction statuses."""

    async def test_success_completes(self, make_task, store):
        """Test a succeeded prediction completes the job."""
        task, _ = make_task(prediction("succeeded", output="https://img/x.png"))
        job_id = await make_job(store, prompt="a cat", model="m", aspect_ratio="1:1")

        job = await run(task, store, job_id)

        assert job.status is JobStatus.COMPLETED
        assert job.engine_data["image_url"] == "https://img/x.png"
        assert job.engine_data["success"] is True
        assert job.engine_data["prompt"] == "a cat"
        assert job.engine_data["model"] == "m"
        assert job.engine_data["aspect_ratio"] == "1:1"
        assert job.engine_data["tool_name"] == "image_generation"
        assert job.engine_data["prediction_id"] == "p1"

    async def test_success_with_list_output(self, make_task, store):
        """Test list output is accepted."""
        task, _ = make_task(prediction("succeeded", output=["https://img/y.webp"]))
        job_id = await make_job(store)
        assert (await run(task, store, job_id)).engine_data["image_url"] == "https://img/y.webp"

    async def test_success_without_output_fails(self, make_task, store):
        """Test success without an image URL fails the job."""
        task, _ = make_task(prediction("succeeded", output=[]))
        job_id = await make_job(store)

        job = await run(task, store, job_id)
        assert job.status is JobStatus.FAILED
        assert "no image URL found" in job.error

    async def test_failed_prediction(self, make_task, store):
        """Test the prediction error is recorded."""
        task, _ = make_task(prediction("failed", error="NSFW content detected"))
        job_id = await make_job(store)

        job = await run(task, store, job_id)
        assert job.error == "Replicate prediction failed: NSFW content detected"

    async def test_canceled_prediction(self, make_task, store):
        """Test a canceled prediction fails the job."""
        task, _ = make_task(prediction("canceled"))
        job_id = await make_job(store)

        job = await run(task, store, job_id)
        assert job.error == "Replicate prediction failed: Prediction canceled"

    async def test_unknown_status_fails(self, make_task, store):
        """Test an unknown status fails the job."""
        task, _ = make_task(prediction("weird"))
        job_id = await make_job(store)

        job = await run(task, store, job_id)
        assert job.status is JobStatus.FAILED
        assert job.status_reason == "Unknown prediction status: weird"


class TestErrors:
    """Test bad parameters and transient errors."""

    async def test_missing_prediction_id(self, make_task, store):
        """Test a missing prediction id fails before any request."""
        task, recorder = make_task(prediction("processing"))
        job_id = await make_job(store, prediction_id="")

        job = await run(task, store, job_id)
        assert job.error == "Missing prediction_id or api_key in task parameters"
        assert recorder.requests == []

    async def test_missing_api_key(self, context, store):
        """Test the job fails with no key anywhere."""
        settings = dataclasses.replace(context.settings, replicate_api_key="")
        task = ImageGenerationTask(dataclasses.replace(context, settings=settings))
        job_id = await make_job(store, api_key="")

        job = await run(task, store, job_id)
        assert job.error == "Missing prediction_id or api_key in task parameters"

    async def test_server_error_reschedules(self, make_task, store):
        """Test a 5xx response is retried."""
        task, _ = make_task(httpx.Response(502, text="bad gateway"))
        job_id = await make_job(store)

        job = await run(task, store, job_id)
        assert job.status is JobStatus.PROCESSING
        assert job.retry.attempts == 1

    async def test_network_error_reschedules(self, make_task, store):
        """Test a connection error is retried."""
        task, _ = make_task(httpx.ConnectError("connection refused"))
        job_id = await make_job(store)

        job = await run(task, store, job_id)
        assert job.status is JobStatus.PROCESSING
        assert job.retry.attempts == 1
