"""sysagent - persistent async system tasks with bounded retry."""

from sysagent.agent import SystemAgent
from sysagent.models import Job, JobStatus, RetryState
from sysagent.registry import TaskRegistry
from sysagent.scheduler import QueueScheduler
from sysagent.store import SqliteJobStore
from sysagent.tasks.base import SystemTask, TaskContext

__version__ = "0.1.0"
__all__ = [
    "SystemAgent",
    "SystemTask",
    "TaskContext",
    "TaskRegistry",
    "QueueScheduler",
    "SqliteJobStore",
    "Job",
    "JobStatus",
    "RetryState",
]
