"""Core data models for sysagent."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    """Possible states for a job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    WAITING = "waiting"  # Gate steps only; never set by the task engine

    @property
    def is_final(self) -> bool:
        return self in FINAL_STATUSES

    @property
    def is_success(self) -> bool:
        return self is JobStatus.COMPLETED

    @property
    def is_failure(self) -> bool:
        return self is JobStatus.FAILED


FINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# Stored status values carry an optional reason: "failed - <reason>".
STATUS_SEPARATOR = " - "

# Forward-only ordering used to reject backwards transitions.
_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.WAITING: 1,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}


def format_status(status: JobStatus, reason: str | None = None) -> str:
    """Build the stored representation of a status."""
    if reason:
        return f"{status.value}{STATUS_SEPARATOR}{reason}"
    return status.value


def parse_status(raw: str | None) -> tuple[JobStatus, str | None]:
    """
    Split a stored status into its base status and optional reason.

    Unknown or empty values parse as pending.
    """
    if not raw:
        return JobStatus.PENDING, None

    base, sep, reason = raw.partition(STATUS_SEPARATOR)
    try:
        status = JobStatus(base.strip())
    except ValueError:
        return JobStatus.PENDING, None

    return status, (reason.strip() or None) if sep else None


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Return True if moving from current to target keeps the job moving forward."""
    if current.is_final:
        return False
    if current is target:
        return True
    return _STATUS_RANK[target] >= _STATUS_RANK[current]


def _as_count(value: Any) -> int:
    """Read a stored counter the way SQLite's CAST(... AS INTEGER) does: "2" -> 2, 1.5 -> 1."""
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


@dataclass
class RetryState:
    """Attempt bookkeeping shared by every task, stored inside engine_data."""

    attempts: int = 0
    max_attempts: int | None = None
    last_attempt: float | None = None

    @classmethod
    def from_engine_data(cls, engine_data: dict[str, Any]) -> RetryState:
        max_attempts = engine_data.get("max_attempts")
        return cls(
            attempts=_as_count(engine_data.get("attempts")),
            max_attempts=_as_count(max_attempts) if max_attempts is not None else None,
            last_attempt=engine_data.get("last_attempt"),
        )

    def to_engine_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {"attempts": self.attempts}
        if self.max_attempts is not None:
            data["max_attempts"] = self.max_attempts
        if self.last_attempt is not None:
            data["last_attempt"] = self.last_attempt
        return data


@dataclass
class Job:
    """A persisted unit of async work."""

    id: int
    status: JobStatus = JobStatus.PENDING
    status_reason: str | None = None
    label: str = ""
    source: str = "system"
    engine_data: dict[str, Any] = field(default_factory=dict)
    created_at: float = 0.0
    started_at: float | None = None
    completed_at: float | None = None
    failed_at: float | None = None

    @property
    def task_type(self) -> str:
        return str(self.engine_data.get("task_type") or "")

    @property
    def error(self) -> str | None:
        return self.engine_data.get("error")

    @property
    def retry(self) -> RetryState:
        return RetryState.from_engine_data(self.engine_data)

    @property
    def raw_status(self) -> str:
        return format_status(self.status, self.status_reason)
