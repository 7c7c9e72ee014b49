"""OpenAI-compatible chat client used by the AI-backed tasks."""

from __future__ import annotations

import logging
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from sysagent.config import Settings
from sysagent.errors import AIRequestError, ConfigurationError
from sysagent.ports import ChatMessage

logger = logging.getLogger(__name__)


class OpenAIChatClient:
    """
    Non-streaming chat completions over any OpenAI-compatible endpoint.

    SDK retries are disabled: a failed request fails the job, and the job
    itself decides whether another attempt makes sense.
    """

    def __init__(self, client: AsyncOpenAI) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAIChatClient:
        if not settings.llm_api_key:
            raise ConfigurationError("LLM API key is not set. Set SYSAGENT_LLM_API_KEY.")

        client = AsyncOpenAI(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url or None,
            timeout=httpx.Timeout(settings.http_timeout * 4, connect=5.0),
            max_retries=0,
        )
        return cls(client)

    async def chat(
        self,
        messages: list[ChatMessage],
        *,
        model: str,
        context: dict[str, Any] | None = None,
    ) -> str:
        logger.debug("LLM request model=%s context=%s", model, context or {})
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=messages,
            )
        except openai.APIError as e:
            raise AIRequestError(_friendly_error(e)) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        await self._client.close()


def _friendly_error(err: openai.APIError) -> str:
    if isinstance(err, openai.AuthenticationError):
        return "LLM authentication failed. Check SYSAGENT_LLM_API_KEY."
    if isinstance(err, openai.RateLimitError):
        return "LLM is rate-limited. Try again later."
    if isinstance(err, (openai.APIConnectionError, openai.APITimeoutError)):
        return "LLM network/timeout error."
    if isinstance(err, openai.NotFoundError):
        return "LLM model not available."
    return str(err).strip() or err.__class__.__name__
