"""Fire-once-after-delay scheduling backed by a persistent action queue."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Protocol

import aiosqlite

from sysagent import db

logger = logging.getLogger(__name__)

Dispatcher = Callable[[int], Awaitable[None]]


class Scheduler(Protocol):
    """What the task engine needs from a scheduling backend."""

    @property
    def available(self) -> bool: ...

    async def schedule_once(self, delay_seconds: float, job_id: int) -> bool: ...


class QueueScheduler:
    """
    Persistent fire-once scheduler.

    Every schedule_once() call stores an action row; a polling loop claims due
    actions and hands their job id to the single registered dispatcher. Actions
    survive restarts because they live in the same database as the jobs.

    Example:
        scheduler = QueueScheduler(conn, poll_interval=1.0)
        scheduler.set_dispatcher(agent.handle_task)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        *,
        poll_interval: float = 1.0,
        max_concurrent: int = 4,
        batch_limit: int = 32,
    ) -> None:
        self.conn = conn
        self.poll_interval = max(0.01, float(poll_interval))
        self.max_concurrent = max(1, int(max_concurrent))
        self.batch_limit = max(1, int(batch_limit))

        self._dispatcher: Dispatcher | None = None
        self._closed = False

        # Orchestrator state
        self._running = False
        self._loop_task: asyncio.Task | None = None
        self._work_tasks: dict[int, asyncio.Task] = {}  # action_id -> task

    # --- Registration ---

    def set_dispatcher(self, dispatcher: Dispatcher) -> None:
        """Register the entry point invoked with a job id when an action fires."""
        self._dispatcher = dispatcher

    @property
    def available(self) -> bool:
        return not self._closed

    # --- Scheduling ---

    async def schedule_once(self, delay_seconds: float, job_id: int) -> bool:
        """
        Fire the dispatcher for job_id once, delay_seconds from now.

        Returns False if the scheduler is closed or the action could not be stored.
        """
        if not self.available:
            return False

        now = time.time()
        try:
            action_id = await db.insert_action(
                self.conn, job_id, now + max(0.0, float(delay_seconds)), now
            )
        except (aiosqlite.Error, ValueError):
            logger.exception("Failed to store scheduled action for job %s", job_id)
            return False

        logger.debug(
            "Scheduled action %s for job %s in %ss", action_id, job_id, delay_seconds,
            extra={"job_id": job_id},
        )
        return True

    async def release_stale_claims(self, max_age_seconds: float = 86400) -> int:
        """
        Reset actions stuck in running for longer than max_age_seconds.

        A worker that died mid-dispatch leaves its claim behind; releasing it
        lets the action fire again.
        """
        cutoff = time.time() - max(0.0, float(max_age_seconds))
        released = await db.release_stale_actions(self.conn, cutoff)
        if released:
            logger.info(
                "Released %d stale action claims older than %ss", released, max_age_seconds
            )
        return released

    # --- Lifecycle ---

    def start(self) -> None:
        """
        Start the polling loop.

        Non-blocking - runs as a background asyncio task.
        """
        if self._running:
            return
        if self._dispatcher is None:
            raise RuntimeError("No dispatcher registered")

        self._running = True
        self._loop_task = asyncio.get_running_loop().create_task(self._run_loop())

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop the polling loop.

        Args:
            timeout: Max seconds to wait for in-flight dispatches. None = wait forever.
                Dispatches still running after the timeout are cancelled and
                their actions go back to pending.
        """
        self._running = False

        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._work_tasks:
            tasks = list(self._work_tasks.values())
            if timeout is not None:
                _, pending = await asyncio.wait(tasks, timeout=timeout)
                for task in pending:
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass
            else:
                await asyncio.gather(*tasks, return_exceptions=True)

        self._work_tasks.clear()

    def close(self) -> None:
        """Refuse further scheduling. The database connection is owned by the caller."""
        self._closed = True

    async def run_due(self, now: float | None = None) -> int:
        """
        Claim and dispatch every due action once, waiting for all of them.

        Returns the number of actions dispatched.
        """
        claimed = await self._claim_due(now, self.batch_limit)
        if claimed:
            await asyncio.gather(*(self._execute_action(action) for action in claimed))
        return len(claimed)

    async def _run_loop(self) -> None:
        """Background loop that dispatches due actions."""
        while self._running:
            capacity = self.max_concurrent - len(self._work_tasks)
            if capacity > 0:
                try:
                    claimed = await self._claim_due(None, min(capacity, self.batch_limit))
                except aiosqlite.Error:
                    logger.exception("Failed to fetch due actions")
                    claimed = []

                for action in claimed:
                    action_id = action["action_id"]
                    task = asyncio.create_task(self._execute_action(action))
                    self._work_tasks[action_id] = task
                    task.add_done_callback(
                        lambda _t, aid=action_id: self._work_tasks.pop(aid, None)
                    )

            await asyncio.sleep(self.poll_interval)

    async def _claim_due(self, now: float | None, limit: int) -> list[dict]:
        now = time.time() if now is None else now
        claimed = []
        for action in await db.due_actions(self.conn, now, limit):
            if await db.claim_action(self.conn, action["action_id"], time.time()):
                claimed.append(action)
        return claimed

    async def _execute_action(self, action: dict) -> None:
        """Hand one claimed action to the dispatcher and record the outcome."""
        action_id = action["action_id"]
        job_id = action["job_id"]
        error = None

        if self._dispatcher is None:
            error = "No dispatcher registered"
        else:
            try:
                await self._dispatcher(job_id)
            except asyncio.CancelledError:
                # Interrupted by stop(): hand the action back so the job wakes up again.
                await asyncio.shield(db.release_action(self.conn, action_id))
                logger.info(
                    "Dispatch cancelled for action %s (job %s); released claim", action_id, job_id,
                    extra={"job_id": job_id},
                )
                raise
            except Exception as e:
                error = str(e) or e.__class__.__name__
                logger.exception(
                    "Dispatch failed for action %s (job %s)", action_id, job_id,
                    extra={"job_id": job_id},
                )

        await db.finish_action(self.conn, action_id, time.time(), error)
