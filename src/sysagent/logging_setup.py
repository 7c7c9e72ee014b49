"""Logging configuration for the sysagent CLI."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

# Third-party loggers that are only interesting when something breaks.
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "aiosqlite")


class _ContextFormatter(logging.Formatter):
    """Append job_id / task_type from `extra` when a record carries them."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        parts = []
        job_id = getattr(record, "job_id", None)
        task_type = getattr(record, "task_type", None)
        if job_id is not None:
            parts.append(f"job_id={job_id}")
        if task_type:
            parts.append(f"task_type={task_type}")
        return f"{message} [{' '.join(parts)}]" if parts else message


def setup_logging(level: str | int = "INFO", log_dir: str | Path | None = None) -> None:
    """
    Configure root logging: rich console output plus an optional log file.

    Call this once, early, from the CLI entry point.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    console = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console.setLevel(level)
    console.setFormatter(_ContextFormatter("%(message)s"))
    root.addHandler(console)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        fh = logging.FileHandler(str(log_dir / "sysagent.log"), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(_ContextFormatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        root.addHandler(fh)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
