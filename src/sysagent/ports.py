"""
Ports (interfaces) used by the concrete tasks.

Tasks depend on Protocols instead of concrete implementations, so the AI
provider and the content site stay swappable and tests can use fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

ChatMessage = dict[str, Any]
# OpenAI-style chat messages: {"role": "...", "content": "..." | [parts]}.


@dataclass
class Post:
    id: int
    title: str
    content: str
    status: str = "publish"
    url: str = ""
    categories: list[int] = field(default_factory=list)
    tags: list[int] = field(default_factory=list)


@dataclass
class Attachment:
    id: int
    mime_type: str
    source_url: str = ""
    title: str = ""
    caption: str = ""
    description: str = ""
    alt_text: str = ""
    parent_id: int = 0


class LLMClient(Protocol):
    """Chat completion client. Raises AIRequestError on failure."""

    async def chat(
        self,
        messages: list[ChatMessage],
        *,
        model: str,
        context: dict[str, Any] | None = None,
    ) -> str: ...


class ContentRepository(Protocol):
    """Read/write access to the site whose content the tasks maintain."""

    async def get_post(self, post_id: int) -> Post | None: ...

    async def find_posts_by_terms(
        self,
        *,
        exclude_id: int,
        categories: list[int],
        tags: list[int],
        limit: int = 50,
    ) -> list[Post]: ...

    async def update_post_content(self, post_id: int, content: str) -> None: ...

    async def get_post_meta(self, post_id: int, key: str) -> Any: ...

    async def set_post_meta(self, post_id: int, key: str, value: Any) -> None: ...

    async def get_attachment(self, attachment_id: int) -> Attachment | None: ...

    async def set_attachment_alt_text(self, attachment_id: int, alt_text: str) -> None: ...
