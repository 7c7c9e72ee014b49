"""Alt text generation for image attachments."""

from __future__ import annotations

from typing import Any

from sysagent.errors import AIRequestError, ContentError
from sysagent.ports import Attachment
from sysagent.tasks.base import SystemTask

QUOTE_CHARS = "\"'“”‘’"


def normalize_alt_text(raw: str) -> str:
    """Trim, drop wrapping quotes, capitalize, and end with a period."""
    text = (raw or "").strip().strip(QUOTE_CHARS).strip()
    if not text:
        return ""
    text = text[0].upper() + text[1:]
    if text[-1] not in ".!?":
        text += "."
    return text


def build_prompt(attachment: Attachment, parent_title: str = "") -> str:
    lines = [
        "Write alt text for this image.",
        "Describe what the image shows in one concise sentence (under 125 characters).",
        "Do not start with 'Image of' or 'Picture of'. Return only the alt text.",
    ]

    context = []
    if attachment.title:
        context.append(f"Title: {attachment.title}")
    if attachment.caption:
        context.append(f"Caption: {attachment.caption}")
    if attachment.description:
        context.append(f"Description: {attachment.description}")
    if parent_title:
        context.append(f"Used in post: {parent_title}")

    if context:
        lines.append("")
        lines.append("Context:")
        lines.extend(context)

    return "\n".join(lines)


class AltTextTask(SystemTask):
    task_type = "alt_text_generation"

    async def execute(self, job_id: int, params: dict[str, Any]) -> None:
        try:
            attachment_id = int(params.get("attachment_id") or 0)
        except (TypeError, ValueError):
            attachment_id = 0
        force = bool(params.get("force"))

        if attachment_id <= 0:
            await self.fail_job(job_id, "Missing or invalid attachment_id")
            return

        content = self.context.content
        if content is None:
            await self.fail_job(job_id, "No content repository configured")
            return

        attachment = await content.get_attachment(attachment_id)
        if attachment is None:
            await self.fail_job(job_id, f"Attachment #{attachment_id} not found")
            return

        if not attachment.mime_type.startswith("image/"):
            await self.fail_job(job_id, f"Attachment #{attachment_id} is not an image")
            return

        if attachment.alt_text.strip() and not force:
            await self.complete_job(job_id, {
                "skipped": True,
                "attachment_id": attachment_id,
                "reason": "Alt text already exists (use force to regenerate)",
            })
            return

        if not attachment.source_url:
            await self.fail_job(job_id, f"Image file not found for attachment #{attachment_id}")
            return

        model = self.settings.llm_model
        if self.context.llm is None or not model:
            await self.fail_job(job_id, "No default AI provider/model configured")
            return

        parent_title = ""
        if attachment.parent_id:
            parent = await content.get_post(attachment.parent_id)
            parent_title = parent.title if parent else ""

        messages = [
            {
                "role": "user",
                "content": [{"type": "image_url", "image_url": {"url": attachment.source_url}}],
            },
            {"role": "user", "content": build_prompt(attachment, parent_title)},
        ]

        try:
            raw = await self.context.llm.chat(
                messages, model=model, context={"attachment_id": attachment_id}
            )
        except AIRequestError as e:
            await self.fail_job(job_id, f"AI request failed: {e}")
            return

        alt_text = normalize_alt_text(raw)
        if not alt_text:
            await self.fail_job(job_id, "AI returned empty alt text")
            return

        try:
            await content.set_attachment_alt_text(attachment_id, alt_text)
        except ContentError as e:
            await self.fail_job(job_id, f"Failed to save alt text: {e}")
            return

        await self.complete_job(job_id, {"attachment_id": attachment_id, "alt_text": alt_text})
