"""Internal linking: weave links to related posts into a post's content with AI."""

from __future__ import annotations

import re
import time
from typing import Any

from sysagent.errors import AIRequestError, ContentError
from sysagent.ports import Post
from sysagent.tasks.base import SystemTask

LINKS_META_KEY = "_dm_internal_links"
CANDIDATE_LIMIT = 50
EXCERPT_WORDS = 30

CATEGORY_WEIGHT = 1
TAG_WEIGHT = 2


def trim_words(text: str, limit: int = EXCERPT_WORDS, more: str = "...") -> str:
    words = re.sub(r"<[^>]+>", " ", text or "").split()
    if len(words) <= limit:
        return " ".join(words)
    return " ".join(words[:limit]) + more


def score_related(post: Post, candidates: list[Post], limit: int) -> list[dict[str, Any]]:
    """
    Rank candidates by taxonomy overlap with post and keep the top `limit`.

    A shared category scores 1, a shared tag scores 2. Candidates with no
    overlap are dropped; ties keep candidate order.
    """
    categories = set(post.categories)
    tags = set(post.tags)

    scored = []
    for candidate in candidates:
        if candidate.id == post.id:
            continue
        score = (
            len(categories & set(candidate.categories)) * CATEGORY_WEIGHT
            + len(tags & set(candidate.tags)) * TAG_WEIGHT
        )
        if score > 0:
            scored.append((score, candidate))

    scored.sort(key=lambda item: item[0], reverse=True)

    return [
        {
            "id": candidate.id,
            "url": candidate.url,
            "title": candidate.title,
            "excerpt": trim_words(candidate.content),
            "score": score,
        }
        for score, candidate in scored[:limit]
    ]


def filter_already_linked(related: list[dict[str, Any]], content: str) -> list[dict[str, Any]]:
    return [item for item in related if item["url"] and item["url"] not in content]


def detect_inserted_links(new_content: str, related: list[dict[str, Any]]) -> list[dict[str, Any]]:
    inserted = []
    for item in related:
        pattern = r"<a\s[^>]*href=[\"']" + re.escape(item["url"]) + r"[\"'][^>]*>"
        if re.search(pattern, new_content):
            inserted.append({"url": item["url"], "post_id": item["id"], "title": item["title"]})
    return inserted


def build_prompt(content: str, related: list[dict[str, Any]]) -> str:
    related_list = "".join(
        f"- URL: {item['url']}\n  Title: {item['title']}\n  Excerpt: {item['excerpt']}\n\n"
        for item in related
    )
    return (
        "Here is a blog post in Gutenberg block format. Below are related posts on this site. "
        "Weave internal links to these related posts SEMANTICALLY into existing sentences: "
        "find natural mentions of the topic and wrap the relevant phrase in an anchor tag. "
        "Do NOT add a Related Posts section. Do NOT change tone, meaning, or Gutenberg block structure. "
        "Return the FULL updated content with all blocks intact. "
        "If no natural insertion point exists for a link, skip that link. Do not force it.\n\n"
        "=== POST CONTENT ===\n\n"
        f"{content}\n\n"
        "=== RELATED POSTS TO LINK ===\n\n"
        f"{related_list}"
    )


class InternalLinkingTask(SystemTask):
    task_type = "internal_linking"

    async def execute(self, job_id: int, params: dict[str, Any]) -> None:
        post_id = _as_int(params.get("post_id"))
        links_per_post = _as_int(params.get("links_per_post"), 3)
        force = bool(params.get("force"))

        if post_id <= 0:
            await self.fail_job(job_id, "Missing or invalid post_id")
            return

        content = self.context.content
        if content is None:
            await self.fail_job(job_id, "No content repository configured")
            return

        post = await content.get_post(post_id)
        if post is None or post.status != "publish":
            await self.fail_job(job_id, f"Post #{post_id} does not exist or is not published")
            return

        if not force and await content.get_post_meta(post_id, LINKS_META_KEY):
            await self._skip(job_id, post_id, "Already processed (use force to re-run)")
            return

        if not post.categories and not post.tags:
            await self._skip(job_id, post_id, "Post has no categories or tags")
            return

        candidates = await content.find_posts_by_terms(
            exclude_id=post_id,
            categories=post.categories,
            tags=post.tags,
            limit=CANDIDATE_LIMIT,
        )
        related = filter_already_linked(score_related(post, candidates, links_per_post), post.content)

        if not related:
            await self._skip(job_id, post_id, "No unlinked related posts found")
            return

        model = self.settings.llm_model
        if self.context.llm is None or not model:
            await self.fail_job(job_id, "No default AI provider/model configured")
            return

        messages = [{"role": "user", "content": build_prompt(post.content, related)}]
        try:
            new_content = await self.context.llm.chat(
                messages, model=model, context={"post_id": post_id}
            )
        except AIRequestError as e:
            await self.fail_job(job_id, f"AI request failed: {e}")
            return

        if not (new_content or "").strip():
            await self.fail_job(job_id, "AI returned empty content")
            return

        inserted = detect_inserted_links(new_content, related)
        if not inserted:
            await self._skip(job_id, post_id, "AI found no natural insertion points")
            return

        try:
            await content.update_post_content(post_id, new_content)
            await content.set_post_meta(post_id, LINKS_META_KEY, {
                "processed_at": time.time(),
                "links": inserted,
                "job_id": job_id,
            })
        except ContentError as e:
            await self.fail_job(job_id, f"Failed to update post: {e}")
            return

        await self.complete_job(job_id, {
            "post_id": post_id,
            "links_inserted": len(inserted),
            "links": inserted,
            "completed_at": time.time(),
        })

    async def _skip(self, job_id: int, post_id: int, reason: str) -> None:
        await self.complete_job(job_id, {"skipped": True, "post_id": post_id, "reason": reason})


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return abs(int(value))
    except (TypeError, ValueError):
        return default
