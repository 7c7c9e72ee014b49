"""OpenAI-compatible chat client."""

import json

import httpx
import pytest
from openai import AsyncOpenAI

from sysagent.config import Settings
from sysagent.errors import AIRequestError, ConfigurationError
from sysagent.llm import OpenAIChatClient


def client_for(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAIChatClient(
        AsyncOpenAI(api_key="sk-test", base_url="https://llm.test/v1", http_client=http, max_retries=0)
    )


def completion(content):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "test-model",
        "choices": [
            {"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": content}}
        ],
    }


class TestOpenAIChatClient:
    """Test chat completions through the OpenAI SDK."""

    async def test_returns_content(self):
        """Test the reply content is returned."""
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=completion("hello"))

        llm = client_for(handler)
        reply = await llm.chat([{"role": "user", "content": "hi"}], model="test-model")

        assert reply == "hello"
        assert seen[0]["model"] == "test-model"
        assert seen[0]["messages"] == [{"role": "user", "content": "hi"}]

    async def test_null_content_is_empty(self):
        """Test a null reply reads as an empty string."""
        llm = client_for(lambda request: httpx.Response(200, json=completion(None)))
        assert await llm.chat([{"role": "user", "content": "hi"}], model="m") == ""

    async def test_auth_error(self):
        """Test a 401 becomes a readable AIRequestError."""
        llm = client_for(lambda request: httpx.Response(401, json={"error": {"message": "bad key"}}))
        with pytest.raises(AIRequestError, match="authentication failed"):
            await llm.chat([{"role": "user", "content": "hi"}], model="m")

    async def test_rate_limited(self):
        """Test a 429 becomes a readable AIRequestError."""
        llm = client_for(lambda request: httpx.Response(429, json={"error": {"message": "slow down"}}))
        with pytest.raises(AIRequestError, match="rate-limited"):
            await llm.chat([{"role": "user", "content": "hi"}], model="m")


class TestFromSettings:
    """Test building the client from settings."""

    def test_requires_key(self):
        """Test a missing API key is a configuration error."""
        with pytest.raises(ConfigurationError):
            OpenAIChatClient.from_settings(Settings())

    async def test_builds_client(self):
        """Test a client is built and closed."""
        llm = OpenAIChatClient.from_settings(Settings(llm_api_key="sk-test"))
        await llm.close()
