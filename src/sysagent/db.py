"""Database operations for sysagent."""

from __future__ import annotations

import json
from typing import Any

import aiosqlite

SCHEMA_VERSION = 1

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Jobs: one row per unit of async work
CREATE TABLE IF NOT EXISTS jobs (
    job_id INTEGER PRIMARY KEY AUTOINCREMENT,
    label TEXT,
    source TEXT DEFAULT 'system',
    status TEXT NOT NULL DEFAULT 'pending',
    engine_data TEXT,  -- JSON object
    created_at REAL NOT NULL,
    started_at REAL,
    completed_at REAL,
    failed_at REAL
);

CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);

-- Fire-once actions: the scheduler's queue
CREATE TABLE IF NOT EXISTS scheduled_actions (
    action_id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id INTEGER NOT NULL,
    run_at REAL NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at REAL NOT NULL,
    claimed_at REAL,
    completed_at REAL,
    error TEXT
);

CREATE INDEX IF NOT EXISTS idx_actions_due ON scheduled_actions(status, run_at);
CREATE INDEX IF NOT EXISTS idx_actions_job ON scheduled_actions(job_id);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """
    Initialize database connection and schema.

    Args:
        db_path: Path to SQLite file or ":memory:" for in-memory.

    Returns:
        Open database connection.
    """
    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row

    # Enable WAL mode for better concurrency
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA foreign_keys=ON")

    # Check if schema exists
    async with conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    ) as cursor:
        exists = await cursor.fetchone()

    if not exists:
        # Fresh database - create schema
        await conn.executescript(SCHEMA)
        await conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        await conn.commit()

    return conn


def decode_engine_data(raw: str | None) -> dict[str, Any]:
    """Decode the engine_data column; anything but a JSON object reads as empty."""
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def encode_engine_data(data: dict[str, Any]) -> str:
    return json.dumps(data, default=str)


async def insert_job(
    conn: aiosqlite.Connection,
    *,
    label: str,
    source: str,
    status: str,
    engine_data: dict[str, Any],
    created_at: float,
) -> int:
    """Insert a job row and return its id."""
    cursor = await conn.execute(
        """
        INSERT INTO jobs (label, source, status, engine_data, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (label, source, status, encode_engine_data(engine_data), created_at),
    )
    await conn.commit()
    return int(cursor.lastrowid)


async def get_job_row(conn: aiosqlite.Connection, job_id: int) -> dict | None:
    """Get a job row by ID."""
    async with conn.execute("SELECT * FROM jobs WHERE job_id = ?", (job_id,)) as cursor:
        row = await cursor.fetchone()
        return dict(row) if row else None


async def update_job_columns(
    conn: aiosqlite.Connection, job_id: int, values: dict[str, Any]
) -> bool:
    """Update arbitrary job columns. Returns False if the row does not exist."""
    assignments = ", ".join(f"{column} = ?" for column in values)
    cursor = await conn.execute(
        f"UPDATE jobs SET {assignments} WHERE job_id = ?",
        [*values.values(), job_id],
    )
    await conn.commit()
    return cursor.rowcount > 0


async def merge_engine_data(
    conn: aiosqlite.Connection,
    job_id: int,
    partial: dict[str, Any],
    *,
    expected_attempts: int | None = None,
) -> bool:
    """
    Shallow-merge partial into a job's engine_data.

    With expected_attempts set, the write only lands if the stored attempt
    counter, read as an integer, still holds that value.
    """
    async with conn.execute(
        "SELECT engine_data FROM jobs WHERE job_id = ?", (job_id,)
    ) as cursor:
        row = await cursor.fetchone()
    if row is None:
        return False

    current = decode_engine_data(row["engine_data"])
    merged = {**current, **partial}

    if expected_attempts is None:
        cursor = await conn.execute(
            "UPDATE jobs SET engine_data = ? WHERE job_id = ?",
            (encode_engine_data(merged), job_id),
        )
    else:
        cursor = await conn.execute(
            """
            UPDATE jobs SET engine_data = ?
            WHERE job_id = ?
              AND CAST(COALESCE(json_extract(engine_data, '$.attempts'), 0) AS INTEGER) = ?
            """,
            (encode_engine_data(merged), job_id, expected_attempts),
        )
    await conn.commit()
    return cursor.rowcount > 0


async def list_job_rows(
    conn: aiosqlite.Connection,
    status: str | None = None,
    task_type: str | None = None,
    limit: int = 100,
) -> list[dict]:
    """List jobs with optional filters, newest first."""
    query = "SELECT * FROM jobs WHERE 1=1"
    params: list = []

    if status:
        query += " AND (status = ? OR status LIKE ?)"
        params.extend([status, f"{status} - %"])
    if task_type:
        query += " AND json_extract(engine_data, '$.task_type') = ?"
        params.append(task_type)

    query += " ORDER BY job_id DESC LIMIT ?"
    params.append(limit)

    async with conn.execute(query, params) as cursor:
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]


async def delete_job_rows(conn: aiosqlite.Connection, status: str) -> int:
    """Delete jobs in a base status along with their scheduled actions."""
    like = f"{status} - %"
    await conn.execute(
        """
        DELETE FROM scheduled_actions WHERE job_id IN (
            SELECT job_id FROM jobs WHERE status = ? OR status LIKE ?
        )
        """,
        (status, like),
    )
    cursor = await conn.execute(
        "DELETE FROM jobs WHERE status = ? OR status LIKE ?", (status, like)
    )
    await conn.commit()
    return cursor.rowcount


# --- Scheduled actions ---


async def insert_action(
    conn: aiosqlite.Connection, job_id: int, run_at: float, created_at: float
) -> int:
    cursor = await conn.execute(
        "INSERT INTO scheduled_actions (job_id, run_at, status, created_at) VALUES (?, ?, 'pending', ?)",
        (job_id, run_at, created_at),
    )
    await conn.commit()
    return int(cursor.lastrowid)


async def due_actions(conn: aiosqlite.Connection, now: float, limit: int) -> list[dict]:
    """Pending actions whose run_at has passed, oldest first."""
    async with conn.execute(
        """
        SELECT * FROM scheduled_actions
        WHERE status = 'pending' AND run_at <= ?
        ORDER BY run_at, action_id
        LIMIT ?
        """,
        (now, limit),
    ) as cursor:
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]


async def claim_action(conn: aiosqlite.Connection, action_id: int, now: float) -> bool:
    """Move an action from pending to running. False if someone else got it first."""
    cursor = await conn.execute(
        """
        UPDATE scheduled_actions SET status = 'running', claimed_at = ?
        WHERE action_id = ? AND status = 'pending'
        """,
        (now, action_id),
    )
    await conn.commit()
    return cursor.rowcount > 0


async def finish_action(
    conn: aiosqlite.Connection,
    action_id: int,
    now: float,
    error: str | None = None,
) -> None:
    status = "failed" if error else "complete"
    await conn.execute(
        "UPDATE scheduled_actions SET status = ?, completed_at = ?, error = ? WHERE action_id = ?",
        (status, now, error, action_id),
    )
    await conn.commit()


async def release_stale_actions(conn: aiosqlite.Connection, cutoff: float) -> int:
    """Reset running actions claimed before cutoff back to pending."""
    cursor = await conn.execute(
        """
        UPDATE scheduled_actions SET status = 'pending', claimed_at = NULL
        WHERE status = 'running' AND claimed_at < ?
        """,
        (cutoff,),
    )
    await conn.commit()
    return cursor.rowcount


async def list_actions(
    conn: aiosqlite.Connection, job_id: int | None = None, status: str | None = None
) -> list[dict]:
    query = "SELECT * FROM scheduled_actions WHERE 1=1"
    params: list = []
    if job_id is not None:
        query += " AND job_id = ?"
        params.append(job_id)
    if status:
        query += " AND status = ?"
        params.append(status)
    query += " ORDER BY action_id"
    async with conn.execute(query, params) as cursor:
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]


async def release_action(conn: aiosqlite.Connection, action_id: int) -> None:
    """Put a claimed action back in the queue so it fires again."""
    await conn.execute(
        """
        UPDATE scheduled_actions SET status = 'pending', claimed_at = NULL
        WHERE action_id = ? AND status = 'running'
        """,
        (action_id,),
    )
    await conn.commit()
