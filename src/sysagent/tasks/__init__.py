"""Built-in system tasks."""

from sysagent.tasks.alt_text import AltTextTask
from sysagent.tasks.base import SystemTask, TaskContext
from sysagent.tasks.github_issue import GitHubIssueTask
from sysagent.tasks.image_generation import ImageGenerationTask
from sysagent.tasks.internal_linking import InternalLinkingTask

__all__ = [
    "SystemTask",
    "TaskContext",
    "ImageGenerationTask",
    "InternalLinkingTask",
    "AltTextTask",
    "GitHubIssueTask",
]
