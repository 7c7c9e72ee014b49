"""Alt text generation."""

import dataclasses

from sysagent.models import JobStatus
from sysagent.ports import Attachment, Post
from sysagent.tasks.alt_text import AltTextTask, build_prompt, normalize_alt_text


def image(id=10, **kwargs):
    defaults = {"mime_type": "image/jpeg", "source_url": f"https://site.test/img-{id}.jpg"}
    return Attachment(id=id, **{**defaults, **kwargs})


async def run(context, store, **params):
    job_id = await store.create_job({"task_type": "alt_text_generation", **params})
    await store.update_status(job_id, JobStatus.PROCESSING)
    job = await store.get_job(job_id)
    await AltTextTask(context).execute(job_id, dict(job.engine_data))
    return await store.get_job(job_id)


class TestNormalize:
    """Test cleanup of model-written alt text."""

    def test_adds_period_and_capitalizes(self):
        """Test the text is capitalized and ends with a period."""
        assert normalize_alt_text("a dog on a beach") == "A dog on a beach."

    def test_strips_quotes_and_space(self):
        """Test surrounding quotes and whitespace are removed."""
        assert normalize_alt_text('  "A red barn"  ') == "A red barn."

    def test_keeps_terminal_punctuation(self):
        """Test existing end punctuation is kept."""
        assert normalize_alt_text("What a view!") == "What a view!"
        assert normalize_alt_text("Is it art?") == "Is it art?"

    def test_empty(self):
        """Test quotes alone normalize to an empty string."""
        assert normalize_alt_text("  ''  ") == ""


class TestPrompt:
    """Test the vision prompt."""

    def test_includes_context(self):
        """Test attachment fields and the parent post appear as context."""
        prompt = build_prompt(image(title="Barn", caption="Old barn", description="Red"), "Farm life")
        assert "Title: Barn" in prompt
        assert "Caption: Old barn" in prompt
        assert "Description: Red" in prompt
        assert "Used in post: Farm life" in prompt

    def test_no_context_section_when_empty(self):
        """Test the context section is omitted when there is none."""
        assert "Context:" not in build_prompt(image())


class TestAltTextTask:
    """Test generating and saving alt text for an attachment."""

    async def test_generates_and_saves(self, context, store, content, llm):
        """Test the normalized answer is saved on the attachment."""
        content.add_attachment(image(parent_id=3, title="Barn"))
        content.add_post(Post(id=3, title="Farm life", content=""))
        llm.replies.append('"a red barn at sunset"')

        job = await run(context, store, attachment_id=10)

        assert job.status is JobStatus.COMPLETED
        assert job.engine_data["alt_text"] == "A red barn at sunset."
        assert content.attachments[10].alt_text == "A red barn at sunset."

        messages = llm.calls[0]["messages"]
        assert messages[0]["content"][0]["image_url"]["url"] == "https://site.test/img-10.jpg"
        assert "Used in post: Farm life" in messages[1]["content"]

    async def test_existing_alt_text_skipped(self, context, store, content, llm):
        """Test attachments with alt text are skipped."""
        content.add_attachment(image(alt_text="Already here."))

        job = await run(context, store, attachment_id=10)
        assert job.status is JobStatus.COMPLETED
        assert job.engine_data["skipped"] is True
        assert llm.calls == []

    async def test_force_regenerates(self, context, store, content, llm):
        """Test force replaces existing alt text."""
        content.add_attachment(image(alt_text="Old."))
        llm.replies.append("new text")

        job = await run(context, store, attachment_id=10, force=True)
        assert job.engine_data["alt_text"] == "New text."

    async def test_invalid_id(self, context, store):
        """Test a non-numeric attachment id fails the job."""
        job = await run(context, store, attachment_id="abc")
        assert job.error == "Missing or invalid attachment_id"

    async def test_unknown_attachment(self, context, store):
        """Test a missing attachment fails the job."""
        job = await run(context, store, attachment_id=99)
        assert job.error == "Attachment #99 not found"

    async def test_not_an_image(self, context, store, content):
        """Test non-image attachments fail the job."""
        content.add_attachment(image(mime_type="application/pdf"))
        job = await run(context, store, attachment_id=10)
        assert job.error == "Attachment #10 is not an image"

    async def test_missing_file(self, context, store, content):
        """Test an attachment without a file URL fails the job."""
        content.add_attachment(image(source_url=""))
        job = await run(context, store, attachment_id=10)
        assert job.error == "Image file not found for attachment #10"

    async def test_no_llm(self, context, store, content):
        """Test the job fails when no LLM client is configured."""
        content.add_attachment(image())
        job = await run(dataclasses.replace(context, llm=None), store, attachment_id=10)
        assert job.error == "No default AI provider/model configured"

    async def test_ai_error(self, context, store, content, llm):
        """Test an AI error message is carried into the failure."""
        content.add_attachment(image())
        llm.error = "LLM network/timeout error."
        job = await run(context, store, attachment_id=10)
        assert job.error == "AI request failed: LLM network/timeout error."

    async def test_empty_answer(self, context, store, content, llm):
        """Test an empty answer fails the job."""
        content.add_attachment(image())
        llm.replies.append('""')
        job = await run(context, store, attachment_id=10)
        assert job.error == "AI returned empty alt text"

    async def test_save_failure(self, context, store, content, llm):
        """Test a refused write fails the job."""
        content.add_attachment(image())
        content.fail_writes = True
        llm.replies.append("a cat")
        job = await run(context, store, attachment_id=10)
        assert job.error == "Failed to save alt text: write refused"
