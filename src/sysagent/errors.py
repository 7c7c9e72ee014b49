"""Exception types raised by sysagent."""

from __future__ import annotations


class SysAgentError(Exception):
    """Base exception for sysagent errors."""
    pass


class ConfigurationError(SysAgentError):
    pass


class JobNotFoundError(SysAgentError):
    def __init__(self, job_id):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class AIRequestError(SysAgentError):
    """Raised by LLM clients when a chat request fails."""
    pass


class ContentError(SysAgentError):
    """Raised by content repositories when the remote site rejects a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
