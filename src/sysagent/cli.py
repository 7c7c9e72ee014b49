#!/usr/bin/env python3
"""
sysagent: run the system agent and inspect its jobs.

Usage:
    sysagent run
    sysagent submit github_create_issue -p title="Broken link" -p repo=acme/site
    sysagent list --status failed
    sysagent status 42
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import sys
from datetime import datetime
from typing import Any

from rich.console import Console
from rich.table import Table

from sysagent.abilities import VALID_ASPECT_RATIOS, generate_image
from sysagent.bootstrap import Runtime, create_runtime
from sysagent.config import Settings, load_settings
from sysagent.errors import JobNotFoundError
from sysagent.jobs import recover_stuck_jobs, require_job, summarize_jobs
from sysagent.logging_setup import setup_logging
from sysagent.models import Job, JobStatus

console = Console()

STATUS_STYLES = {
    JobStatus.PENDING: "yellow",
    JobStatus.PROCESSING: "cyan",
    JobStatus.WAITING: "blue",
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
}


def parse_param(raw: str) -> tuple[str, Any]:
    """Parse k=v. Values that are valid JSON (numbers, booleans, lists) keep their type."""
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"Expected key=value, got '{raw}'")
    try:
        return key.strip(), json.loads(value)
    except ValueError:
        return key.strip(), value


def parse_json_object(raw: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise argparse.ArgumentTypeError("Expected a JSON object")
    return data


def _ts(value: float | None) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M:%S")


def _status_text(job: Job) -> str:
    style = STATUS_STYLES.get(job.status, "white")
    return f"[{style}]{job.raw_status}[/{style}]"


def print_job(job: Job) -> None:
    table = Table(title=f"Job #{job.id}", show_header=False, border_style="cyan")
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Label", job.label or "-")
    table.add_row("Task type", job.task_type or "-")
    table.add_row("Status", _status_text(job))
    table.add_row("Created", _ts(job.created_at))
    table.add_row("Started", _ts(job.started_at))
    table.add_row("Completed", _ts(job.completed_at))
    table.add_row("Failed", _ts(job.failed_at))
    retry = job.retry
    if retry.attempts or retry.max_attempts:
        table.add_row("Attempts", f"{retry.attempts}/{retry.max_attempts or '-'}")

    console.print(table)
    console.print_json(json.dumps(job.engine_data, default=str))


def print_jobs(jobs: list[Job]) -> None:
    table = Table(title="Jobs", border_style="cyan")
    table.add_column("ID", justify="right")
    table.add_column("Task type")
    table.add_column("Status")
    table.add_column("Created", style="dim")

    for job in jobs:
        table.add_row(str(job.id), job.task_type or "-", _status_text(job), _ts(job.created_at))

    console.print(table)


# --- Commands ---


async def cmd_run(rt: Runtime, args: argparse.Namespace) -> int:
    await rt.scheduler.release_stale_claims(rt.settings.claim_max_age)

    if args.once:
        dispatched = await rt.scheduler.run_due()
        console.print(f"Dispatched {dispatched} due action(s).")
        return 0

    console.print(
        f"[bold]sysagent[/bold] running with {len(rt.registry)} task types "
        f"(poll {rt.settings.poll_interval}s, max {rt.settings.max_concurrent} concurrent). "
        "Ctrl+C to stop."
    )
    rt.scheduler.start()
    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    return 0


async def cmd_submit(rt: Runtime, args: argparse.Namespace) -> int:
    params: dict[str, Any] = dict(args.json or {})
    params.update(dict(args.param or []))

    job_id = await rt.agent.schedule_task(args.task_type, params, args.context)
    if job_id is None:
        console.print(f"[red]Failed to schedule task '{args.task_type}'[/red]")
        return 1

    console.print(f"Scheduled [bold]{args.task_type}[/bold] as job #{job_id}")
    return 0


async def cmd_status(rt: Runtime, args: argparse.Namespace) -> int:
    try:
        job = await require_job(rt.store, args.job_id)
    except JobNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    print_job(job)
    return 0


async def cmd_list(rt: Runtime, args: argparse.Namespace) -> int:
    status = JobStatus(args.status) if args.status else None
    jobs = await rt.store.list_jobs(status=status, task_type=args.task_type, limit=args.limit)
    if not jobs:
        console.print("No jobs found.")
        return 0
    print_jobs(jobs)
    return 0


async def cmd_summary(rt: Runtime, args: argparse.Namespace) -> int:
    summary = await summarize_jobs(rt.store)

    table = Table(title="Job Summary", show_header=False, border_style="green")
    table.add_column("Status", style="dim")
    table.add_column("Count", style="bold", justify="right")
    for status in JobStatus:
        table.add_row(status.value, str(summary[status.value]))
    table.add_row("total", str(summary["total"]))

    console.print(table)
    return 0


async def cmd_recover(rt: Runtime, args: argparse.Namespace) -> int:
    result = await recover_stuck_jobs(rt.store, dry_run=args.dry_run)

    if result["jobs"]:
        table = Table(border_style="cyan")
        table.add_column("Job", justify="right")
        table.add_column("Outcome")
        table.add_column("Detail")
        for item in result["jobs"]:
            detail = item.get("target_status") or item.get("reason", "")
            table.add_row(str(item["job_id"]), item["status"], detail)
        console.print(table)

    console.print(result["message"])
    return 0


async def cmd_cleanup_claims(rt: Runtime, args: argparse.Namespace) -> int:
    max_age = args.max_age if args.max_age is not None else rt.settings.claim_max_age
    released = await rt.scheduler.release_stale_claims(max_age)
    console.print(f"Released {released} stale claim(s).")
    return 0


async def cmd_tasks(rt: Runtime, args: argparse.Namespace) -> int:
    for task_type in rt.agent.task_types():
        console.print(f"  {task_type}")
    return 0


async def cmd_generate_image(rt: Runtime, args: argparse.Namespace) -> int:
    result = await generate_image(
        rt.agent,
        args.prompt,
        model=args.model,
        aspect_ratio=args.aspect_ratio,
    )
    if not result["success"]:
        console.print(f"[red]{result['error']}[/red]")
        return 1

    console.print(result["message"])
    return 0


COMMANDS = {
    "run": cmd_run,
    "submit": cmd_submit,
    "status": cmd_status,
    "list": cmd_list,
    "summary": cmd_summary,
    "recover": cmd_recover,
    "cleanup-claims": cmd_cleanup_claims,
    "tasks": cmd_tasks,
    "generate-image": cmd_generate_image,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sysagent",
        description="sysagent - async system task engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sysagent run
  sysagent run --once
  sysagent submit internal_linking -p post_id=12 -p force=true
  sysagent list --status processing --task-type image_generation
  sysagent recover --dry-run
        """,
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="SQLite database path (default: SYSAGENT_DB_PATH)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Console log level (default: SYSAGENT_LOG_LEVEL or INFO)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the scheduler loop")
    run.add_argument("--once", action="store_true", help="Dispatch due actions once and exit")

    submit = sub.add_parser("submit", help="Schedule a task")
    submit.add_argument("task_type", help="Task type, e.g. image_generation")
    submit.add_argument(
        "--param", "-p",
        type=parse_param,
        action="append",
        help="Task parameter as key=value (repeatable)",
    )
    submit.add_argument("--json", type=parse_json_object, default=None, help="Task parameters as a JSON object")
    submit.add_argument("--context", type=parse_json_object, default=None, help="Routing context as a JSON object")

    status = sub.add_parser("status", help="Show one job")
    status.add_argument("job_id", type=int)

    lst = sub.add_parser("list", help="List jobs")
    lst.add_argument("--status", choices=[s.value for s in JobStatus], default=None)
    lst.add_argument("--task-type", default=None)
    lst.add_argument("--limit", type=int, default=50)

    sub.add_parser("summary", help="Count jobs by status")

    recover = sub.add_parser("recover", help="Finish jobs stuck in processing")
    recover.add_argument("--dry-run", action="store_true", help="Report without changing anything")

    cleanup = sub.add_parser("cleanup-claims", help="Release stale scheduler claims")
    cleanup.add_argument("--max-age", type=float, default=None, help="Seconds (default: SYSAGENT_CLAIM_MAX_AGE)")

    sub.add_parser("tasks", help="List registered task types")

    image = sub.add_parser("generate-image", help="Start an image generation")
    image.add_argument("prompt")
    image.add_argument("--model", default=None)
    image.add_argument("--aspect-ratio", choices=VALID_ASPECT_RATIOS, default=None)

    return parser


async def run_command(settings: Settings, args: argparse.Namespace) -> int:
    rt = await create_runtime(settings)
    try:
        return await COMMANDS[args.command](rt, args)
    finally:
        await rt.aclose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = load_settings()
    overrides: dict[str, Any] = {}
    if args.db:
        overrides["db_path"] = args.db
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    setup_logging(settings.log_level, settings.log_dir)

    try:
        return asyncio.run(run_command(settings, args))
    except KeyboardInterrupt:
        console.print("\nStopped.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
