"""Image generation: polls a Replicate prediction until it settles."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from sysagent.tasks.base import SystemTask

logger = logging.getLogger(__name__)

REPLICATE_PREDICTIONS_URL = "https://api.replicate.com/v1/predictions"

# 24 polls at 5s intervals is about two minutes of polling.
MAX_ATTEMPTS = 24
POLL_INTERVAL = 5
POLL_TIMEOUT = 15.0


def extract_image_url(output: Any) -> str | None:
    """Replicate returns either a single URL or a list of URLs."""
    if isinstance(output, str):
        return output or None
    if isinstance(output, list) and output and isinstance(output[0], str):
        return output[0] or None
    return None


class ImageGenerationTask(SystemTask):
    """
    Poll a Replicate prediction once per invocation.

    starting/processing and transport errors reschedule; succeeded completes
    with the image URL; failed/canceled and unknown statuses fail.
    """

    task_type = "image_generation"

    async def execute(self, job_id: int, params: dict[str, Any]) -> None:
        prediction_id = str(params.get("prediction_id") or "")
        api_key = str(params.get("api_key") or self.settings.replicate_api_key or "")

        if not prediction_id or not api_key:
            await self.fail_job(job_id, "Missing prediction_id or api_key in task parameters")
            return

        await self.ensure_max_attempts(job_id, params, MAX_ATTEMPTS)

        try:
            status_data = await self._poll(prediction_id, api_key)
        except httpx.HTTPError as e:
            logger.warning(
                "Image generation poll failed for job %s: %s", job_id, e,
                extra={"job_id": job_id, "task_type": self.task_type},
            )
            await self.reschedule(job_id, POLL_INTERVAL)
            return

        status = str(status_data.get("status") or "")

        if status == "succeeded":
            await self._handle_success(job_id, status_data, params)
        elif status in ("failed", "canceled"):
            error = status_data.get("error") or f"Prediction {status}"
            await self.fail_job(job_id, f"Replicate prediction failed: {error}")
        elif status in ("starting", "processing"):
            await self.reschedule(job_id, POLL_INTERVAL)
        else:
            await self.fail_job(job_id, f"Unknown prediction status: {status}")

    async def _poll(self, prediction_id: str, api_key: str) -> dict[str, Any]:
        headers = {"Authorization": f"Token {api_key}"}
        url = f"{REPLICATE_PREDICTIONS_URL}/{prediction_id}"

        resp = await self.request("GET", url, headers=headers, timeout=POLL_TIMEOUT)
        resp.raise_for_status()
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def _handle_success(
        self, job_id: int, status_data: dict[str, Any], params: dict[str, Any]
    ) -> None:
        image_url = extract_image_url(status_data.get("output"))
        if not image_url:
            await self.fail_job(
                job_id, "Replicate prediction succeeded but no image URL found in output"
            )
            return

        model = params.get("model") or "unknown"
        await self.complete_job(job_id, {
            "success": True,
            "message": f"Image generated successfully using {model}.",
            "image_url": image_url,
            "prompt": params.get("prompt", ""),
            "model": model,
            "aspect_ratio": params.get("aspect_ratio", ""),
            "tool_name": "image_generation",
            "completed_at": time.time(),
        })
