"""
Composition root.

Builds every collaborator from Settings and wires the agent into the
scheduler. Nothing else in the package reads configuration on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import aiosqlite
import httpx

from sysagent import db
from sysagent.agent import SystemAgent
from sysagent.config import Settings, get_settings
from sysagent.content import WordPressContentRepository
from sysagent.llm import OpenAIChatClient
from sysagent.registry import TaskRegistry, load_entry_points, register_builtin_tasks
from sysagent.scheduler import QueueScheduler
from sysagent.store import SqliteJobStore
from sysagent.tasks.base import TaskContext

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything a running agent process holds on to."""

    settings: Settings
    conn: aiosqlite.Connection
    store: SqliteJobStore
    scheduler: QueueScheduler
    registry: TaskRegistry
    agent: SystemAgent
    http: httpx.AsyncClient
    llm: OpenAIChatClient | None = None
    content: WordPressContentRepository | None = None

    async def aclose(self) -> None:
        """Stop the scheduler and release network and database resources."""
        await self.scheduler.stop(timeout=5.0)
        self.scheduler.close()
        if self.llm is not None:
            await self.llm.close()
        if self.content is not None:
            await self.content.aclose()
        await self.http.aclose()
        await self.conn.close()


async def create_runtime(settings: Settings | None = None) -> Runtime:
    """
    Build a Runtime from settings (defaults to get_settings()).

    Optional collaborators (LLM, WordPress) are left unset when their
    credentials are missing; tasks that need them fail their job instead.
    """
    if settings is None:
        settings = get_settings()

    if settings.db_path != ":memory:":
        Path(settings.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)

    conn = await db.init_db(settings.db_path)
    store = SqliteJobStore(conn)
    scheduler = QueueScheduler(
        conn,
        poll_interval=settings.poll_interval,
        max_concurrent=settings.max_concurrent,
    )
    http = httpx.AsyncClient(timeout=settings.http_timeout)

    llm = None
    if settings.llm_api_key:
        llm = OpenAIChatClient.from_settings(settings)
    else:
        logger.debug("LLM not configured; AI-backed tasks will fail their jobs")

    content = None
    if settings.wp_base_url:
        content = WordPressContentRepository.from_settings(settings)

    context = TaskContext(
        store=store,
        scheduler=scheduler,
        settings=settings,
        http=http,
        llm=llm,
        content=content,
    )

    registry = register_builtin_tasks(TaskRegistry())
    load_entry_points(registry)

    agent = SystemAgent(context, registry)
    scheduler.set_dispatcher(agent.handle_task)

    return Runtime(
        settings=settings,
        conn=conn,
        store=store,
        scheduler=scheduler,
        registry=registry,
        agent=agent,
        http=http,
        llm=llm,
        content=content,
    )
