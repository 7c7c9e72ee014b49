"""WordPress REST API implementation of the ContentRepository port."""

from __future__ import annotations

from typing import Any

import httpx

from sysagent.config import Settings
from sysagent.errors import ConfigurationError, ContentError
from sysagent.ports import Attachment, Post


def _text(field: Any) -> str:
    """WordPress renders text fields as {"raw": ..., "rendered": ...} in edit context."""
    if isinstance(field, dict):
        return str(field.get("raw") or field.get("rendered") or "")
    return str(field or "")


def post_from_json(data: dict[str, Any]) -> Post:
    return Post(
        id=int(data["id"]),
        title=_text(data.get("title")),
        content=_text(data.get("content")),
        status=str(data.get("status") or ""),
        url=str(data.get("link") or ""),
        categories=[int(c) for c in data.get("categories") or []],
        tags=[int(t) for t in data.get("tags") or []],
    )


def attachment_from_json(data: dict[str, Any]) -> Attachment:
    return Attachment(
        id=int(data["id"]),
        mime_type=str(data.get("mime_type") or ""),
        source_url=str(data.get("source_url") or ""),
        title=_text(data.get("title")),
        caption=_text(data.get("caption")),
        description=_text(data.get("description")),
        alt_text=str(data.get("alt_text") or ""),
        parent_id=int(data.get("post") or 0),
    )


class WordPressContentRepository:
    """
    Posts, terms, meta and media through /wp-json/wp/v2.

    Authenticates with an application password. Missing resources read as
    None; any other non-2xx response raises ContentError.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._api = base_url.rstrip("/") + "/wp-json/wp/v2"

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> WordPressContentRepository:
        if not settings.wp_base_url:
            raise ConfigurationError("WordPress site is not set. Set SYSAGENT_WP_BASE_URL.")

        if client is None:
            auth = None
            if settings.wp_username and settings.wp_app_password:
                auth = httpx.BasicAuth(settings.wp_username, settings.wp_app_password)
            client = httpx.AsyncClient(auth=auth, timeout=settings.http_timeout)
        return cls(client, settings.wp_base_url)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, f"{self._api}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise ContentError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            try:
                message = resp.json().get("message") or resp.text
            except ValueError:
                message = resp.text
            raise ContentError(
                f"{method} {path} returned {resp.status_code}: {message}",
                status_code=resp.status_code,
            )
        return resp.json()

    async def get_post(self, post_id: int) -> Post | None:
        data = await self._request("GET", f"/posts/{post_id}", params={"context": "edit"})
        return post_from_json(data) if data else None

    async def find_posts_by_terms(
        self,
        *,
        exclude_id: int,
        categories: list[int],
        tags: list[int],
        limit: int = 50,
    ) -> list[Post]:
        params: dict[str, Any] = {
            "status": "publish",
            "exclude": exclude_id,
            "per_page": limit,
            "context": "edit",
            "tax_relation": "OR",
        }
        if categories:
            params["categories"] = ",".join(str(c) for c in categories)
        if tags:
            params["tags"] = ",".join(str(t) for t in tags)

        data = await self._request("GET", "/posts", params=params)
        return [post_from_json(item) for item in data or []]

    async def update_post_content(self, post_id: int, content: str) -> None:
        await self._request("POST", f"/posts/{post_id}", json={"content": content})

    async def get_post_meta(self, post_id: int, key: str) -> Any:
        data = await self._request(
            "GET", f"/posts/{post_id}", params={"context": "edit", "_fields": "meta"}
        )
        if not data:
            return None
        return (data.get("meta") or {}).get(key)

    async def set_post_meta(self, post_id: int, key: str, value: Any) -> None:
        await self._request("POST", f"/posts/{post_id}", json={"meta": {key: value}})

    async def get_attachment(self, attachment_id: int) -> Attachment | None:
        data = await self._request("GET", f"/media/{attachment_id}", params={"context": "edit"})
        return attachment_from_json(data) if data else None

    async def set_attachment_alt_text(self, attachment_id: int, alt_text: str) -> None:
        await self._request("POST", f"/media/{attachment_id}", json={"alt_text": alt_text})

    async def aclose(self) -> None:
        await self._client.aclose()
