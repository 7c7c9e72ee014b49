"""In-memory stand-ins for the LLM and content site."""

from __future__ import annotations

from typing import Any, Callable

import httpx

from sysagent.errors import AIRequestError, ContentError
from sysagent.ports import Attachment, Post


class FakeLLMClient:
    """Returns queued replies in order and records every request."""

    def __init__(self, *replies: str, error: str | None = None) -> None:
        self.replies = list(replies)
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def chat(self, messages, *, model, context=None) -> str:
        self.calls.append({"messages": messages, "model": model, "context": context})
        if self.error:
            raise AIRequestError(self.error)
        return self.replies.pop(0) if self.replies else ""


class FakeContentRepository:
    def __init__(self) -> None:
        self.posts: dict[int, Post] = {}
        self.meta: dict[tuple[int, str], Any] = {}
        self.attachments: dict[int, Attachment] = {}
        self.fail_writes = False

    def add_post(self, post: Post) -> Post:
        self.posts[post.id] = post
        return post

    def add_attachment(self, attachment: Attachment) -> Attachment:
        self.attachments[attachment.id] = attachment
        return attachment

    async def get_post(self, post_id: int) -> Post | None:
        return self.posts.get(post_id)

    async def find_posts_by_terms(self, *, exclude_id, categories, tags, limit=50) -> list[Post]:
        found = [
            post for post in self.posts.values()
            if post.id != exclude_id
            and post.status == "publish"
            and (set(post.categories) & set(categories) or set(post.tags) & set(tags))
        ]
        return found[:limit]

    async def update_post_content(self, post_id: int, content: str) -> None:
        if self.fail_writes:
            raise ContentError("write refused", status_code=403)
        self.posts[post_id].content = content

    async def get_post_meta(self, post_id: int, key: str) -> Any:
        return self.meta.get((post_id, key))

    async def set_post_meta(self, post_id: int, key: str, value: Any) -> None:
        if self.fail_writes:
            raise ContentError("write refused", status_code=403)
        self.meta[(post_id, key)] = value

    async def get_attachment(self, attachment_id: int) -> Attachment | None:
        return self.attachments.get(attachment_id)

    async def set_attachment_alt_text(self, attachment_id: int, alt_text: str) -> None:
        if self.fail_writes:
            raise ContentError("write refused", status_code=403)
        self.attachments[attachment_id].alt_text = alt_text


def mock_http(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by handler."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class Recorder:
    """MockTransport handler that replays queued responses and keeps the requests."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response
