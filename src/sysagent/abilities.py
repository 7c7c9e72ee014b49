"""Image generation ability: start a Replicate prediction and hand polling to the agent."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from sysagent.tasks.image_generation import REPLICATE_PREDICTIONS_URL

if TYPE_CHECKING:
    from sysagent.agent import SystemAgent

logger = logging.getLogger(__name__)

VALID_ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")
DEFAULT_MODEL = "google/imagen-4-fast"
DEFAULT_ASPECT_RATIO = "3:4"

START_TIMEOUT = 30.0


def build_input_params(prompt: str, aspect_ratio: str, model: str) -> dict[str, Any]:
    """Model-specific Replicate input. Imagen models take a safety level, others an output quality."""
    if "imagen" in model:
        return {
            "prompt": prompt,
            "aspect_ratio": aspect_ratio,
            "output_format": "jpg",
            "safety_filter_level": "block_only_high",
        }

    return {
        "prompt": prompt,
        "num_outputs": 1,
        "aspect_ratio": aspect_ratio,
        "output_format": "webp",
        "output_quality": 90,
    }


def _error(message: str) -> dict[str, Any]:
    return {"success": False, "error": message}


async def generate_image(
    agent: SystemAgent,
    prompt: str,
    *,
    model: str | None = None,
    aspect_ratio: str | None = None,
    pipeline_job_id: int | None = None,
) -> dict[str, Any]:
    """
    Start an image prediction and schedule an image_generation task to poll it.

    Returns immediately with the job id; the image URL lands in the job's
    engine_data once the prediction settles.
    """
    prompt = (prompt or "").strip()
    if not prompt:
        return _error("Image generation requires a prompt.")

    settings = agent.context.settings
    api_key = settings.replicate_api_key
    if not api_key:
        return _error("Image generation not configured. Add a Replicate API key in Settings.")

    model = model or settings.image_default_model or DEFAULT_MODEL
    aspect_ratio = aspect_ratio or settings.image_default_aspect_ratio or DEFAULT_ASPECT_RATIO
    if aspect_ratio not in VALID_ASPECT_RATIOS:
        aspect_ratio = DEFAULT_ASPECT_RATIO

    payload = {"model": model, "input": build_input_params(prompt, aspect_ratio, model)}
    headers = {"Authorization": f"Token {api_key}"}

    try:
        resp = await _post(agent, REPLICATE_PREDICTIONS_URL, headers=headers, json=payload)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Replicate prediction request failed: %s", e)
        return _error(f"Failed to start image generation: {e}")

    try:
        prediction = resp.json()
    except ValueError:
        prediction = None
    if not isinstance(prediction, dict) or not prediction.get("id"):
        return _error("Invalid response from Replicate API.")

    prediction_id = prediction["id"]
    context = {"pipeline_job_id": int(pipeline_job_id)} if pipeline_job_id else None

    job_id = await agent.schedule_task(
        "image_generation",
        {
            "prediction_id": prediction_id,
            "model": model,
            "prompt": prompt,
            "aspect_ratio": aspect_ratio,
        },
        context,
    )
    if not job_id:
        return _error("Failed to schedule image generation task.")

    return {
        "success": True,
        "pending": True,
        "job_id": job_id,
        "prediction_id": prediction_id,
        "message": (
            f"Image generation scheduled (Job #{job_id}). "
            f"Model: {model}, aspect ratio: {aspect_ratio}."
        ),
    }


async def _post(agent: SystemAgent, url: str, **kwargs: Any) -> httpx.Response:
    client = agent.context.http
    if client is not None:
        return await client.post(url, timeout=START_TIMEOUT, **kwargs)
    async with httpx.AsyncClient(timeout=START_TIMEOUT) as one_off:
        return await one_off.post(url, **kwargs)
