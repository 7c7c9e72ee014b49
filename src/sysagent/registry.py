"""Task type registry."""

from __future__ import annotations

import logging
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from sysagent.tasks.base import SystemTask, TaskContext

logger = logging.getLogger(__name__)

TaskFactory = Callable[["TaskContext"], "SystemTask"]

ENTRY_POINT_GROUP = "sysagent.tasks"


class TaskRegistry:
    """
    Maps task type strings to task factories.

    Registering a type twice replaces the earlier factory (last registration
    wins) and logs a warning.

    Example:
        registry = TaskRegistry()
        registry.register("image_generation", ImageGenerationTask)

        @registry.task("ping")
        class PingTask(SystemTask):
            ...
    """

    def __init__(self) -> None:
        self._factories: dict[str, TaskFactory] = {}

    def register(self, task_type: str, factory: TaskFactory) -> None:
        """
        Register a factory for a task type.

        Args:
            task_type: Stable identifier stored in a job's engine_data.
            factory: Callable taking a TaskContext and returning a SystemTask
                (a SystemTask subclass works as-is).
        """
        task_type = (task_type or "").strip()
        if not task_type:
            raise ValueError("Task type must be a non-empty string")

        if task_type in self._factories and self._factories[task_type] is not factory:
            logger.warning("Task type '%s' re-registered; replacing previous handler", task_type)

        self._factories[task_type] = factory

    def task(self, task_type: str):
        """Decorator form of register() for SystemTask subclasses."""
        def decorator(cls):
            if not getattr(cls, "task_type", ""):
                cls.task_type = task_type
            self.register(task_type, cls)
            return cls
        return decorator

    def resolve(self, task_type: str) -> TaskFactory | None:
        """Get the factory for a task type, or None if it is not registered."""
        return self._factories.get(task_type)

    def task_types(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._factories

    def __len__(self) -> int:
        return len(self._factories)


def register_builtin_tasks(registry: TaskRegistry) -> TaskRegistry:
    """Install the task types that ship with sysagent."""
    from sysagent.tasks.alt_text import AltTextTask
    from sysagent.tasks.github_issue import GitHubIssueTask
    from sysagent.tasks.image_generation import ImageGenerationTask
    from sysagent.tasks.internal_linking import InternalLinkingTask

    for cls in (ImageGenerationTask, InternalLinkingTask, AltTextTask, GitHubIssueTask):
        registry.register(cls.task_type, cls)
    return registry


def load_entry_points(registry: TaskRegistry, group: str = ENTRY_POINT_GROUP) -> int:
    """
    Register task types published by installed packages.

    Each entry point name is the task type; its object is a SystemTask
    subclass or any factory taking a TaskContext. Returns the number loaded.
    """
    loaded = 0
    for ep in entry_points(group=group):
        try:
            factory = ep.load()
        except Exception:
            logger.exception("Failed to load task entry point '%s'", ep.name)
            continue
        registry.register(ep.name, factory)
        loaded += 1

    if loaded:
        logger.debug("Loaded %d task types from entry points", loaded)
    return loaded
