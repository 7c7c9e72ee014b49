"""Shared fixtures: an in-memory database and a fully wired agent."""

from __future__ import annotations

import pytest

from sysagent import db
from sysagent.agent import SystemAgent
from sysagent.config import Settings
from sysagent.registry import TaskRegistry, register_builtin_tasks
from sysagent.scheduler import QueueScheduler
from sysagent.store import SqliteJobStore
from sysagent.tasks.base import TaskContext

from .fakes import FakeContentRepository, FakeLLMClient


@pytest.fixture
async def conn():
    conn = await db.init_db(":memory:")
    yield conn
    await conn.close()


@pytest.fixture
def store(conn):
    return SqliteJobStore(conn)


@pytest.fixture
def scheduler(conn):
    return QueueScheduler(conn, poll_interval=0.01)


@pytest.fixture
def settings():
    return Settings(
        db_path=":memory:",
        replicate_api_key="r8_test",
        llm_api_key="sk-test",
        llm_model="test-model",
        github_pat="ghp_test",
        github_default_repo="acme/site",
    )


@pytest.fixture
def llm():
    return FakeLLMClient()


@pytest.fixture
def content():
    return FakeContentRepository()


@pytest.fixture
def context(store, scheduler, settings, llm, content):
    return TaskContext(
        store=store,
        scheduler=scheduler,
        settings=settings,
        llm=llm,
        content=content,
    )


@pytest.fixture
def registry():
    return register_builtin_tasks(TaskRegistry())


@pytest.fixture
def agent(context, registry, scheduler):
    agent = SystemAgent(context, registry)
    scheduler.set_dispatcher(agent.handle_task)
    return agent
