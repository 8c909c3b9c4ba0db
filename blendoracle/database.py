from __future__ import annotations
"""
Blendoracle — Database Layer
=============================
Async SQLite storage for the server-side session context log and model usage
telemetry.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Database path (set by main.py at startup)
# ---------------------------------------------------------------------------
_db_path: str = ""


def set_db_path(path: str):
    global _db_path
    _db_path = path


def _get_db_path() -> str:
    if not _db_path:
        raise RuntimeError("Database path not set. Call set_db_path() first.")
    return _db_path


# ===========================================================================
# Initialization
# ===========================================================================

async def init_db():
    """Create tables if they don't exist."""
    Path(_get_db_path()).parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(_get_db_path()) as db:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS session_queries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                query TEXT NOT NULL,
                intent TEXT,
                entities TEXT,
                generated_path TEXT,
                timestamp REAL NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_session_queries_session "
            "ON session_queries(session_id, id)"
        )

        await db.execute("""
            CREATE TABLE IF NOT EXISTS model_usage (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT,
                preset TEXT,
                role TEXT NOT NULL,
                provider TEXT NOT NULL,
                model TEXT NOT NULL,
                input_tokens INTEGER DEFAULT 0,
                output_tokens INTEGER DEFAULT 0,
                duration_ms INTEGER DEFAULT 0,
                estimated_cost_usd REAL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.commit()


# ===========================================================================
# Session query log
# ===========================================================================

def _row_to_entry(row) -> dict:
    return {
        "query": row["query"],
        "timestamp": row["timestamp"],
        "intent": row["intent"],
        "entities": json.loads(row["entities"]) if row["entities"] else {},
        "generatedPath": row["generated_path"],
    }


async def append_session_query(
    session_id: str,
    query: str,
    intent: str | None,
    entities: dict | None,
    generated_path: str | None,
    timestamp: float,
    max_entries: int,
) -> None:
    """Append one entry and trim the session to its ``max_entries`` newest rows."""
    async with aiosqlite.connect(_get_db_path()) as db:
        await db.execute(
            """INSERT INTO session_queries
               (session_id, query, intent, entities, generated_path, timestamp)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (session_id, query, intent, json.dumps(entities or {}), generated_path, timestamp),
        )
        await db.execute(
            """DELETE FROM session_queries
               WHERE session_id = ? AND id NOT IN (
                   SELECT id FROM session_queries WHERE session_id = ?
                   ORDER BY id DESC LIMIT ?
               )""",
            (session_id, session_id, max_entries),
        )
        await db.commit()


async def get_session_queries(session_id: str, limit: int) -> list[dict]:
    """Return up to ``limit`` most recent entries, oldest first."""
    async with aiosqlite.connect(_get_db_path()) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(
            """SELECT * FROM session_queries WHERE session_id = ?
               ORDER BY id DESC LIMIT ?""",
            (session_id, limit),
        )
        rows = await cursor.fetchall()
    return [_row_to_entry(r) for r in reversed(rows)]


async def set_generated_path(session_id: str, query: str, path: str) -> bool:
    """Record the published path on the newest entry for ``query``."""
    async with aiosqlite.connect(_get_db_path()) as db:
        cursor = await db.execute(
            """UPDATE session_queries SET generated_path = ?
               WHERE id = (
                   SELECT id FROM session_queries
                   WHERE session_id = ? AND query = ?
                   ORDER BY id DESC LIMIT 1
               )""",
            (path, session_id, query),
        )
        await db.commit()
        return cursor.rowcount > 0


async def delete_session(session_id: str) -> int:
    async with aiosqlite.connect(_get_db_path()) as db:
        cursor = await db.execute(
            "DELETE FROM session_queries WHERE session_id = ?", (session_id,)
        )
        await db.commit()
        return cursor.rowcount


async def purge_expired_sessions(ttl_hours: float) -> int:
    """Delete entries older than ``ttl_hours``. Returns the number removed."""
    cutoff = (datetime.now(timezone.utc) - timedelta(hours=ttl_hours)).timestamp()
    async with aiosqlite.connect(_get_db_path()) as db:
        cursor = await db.execute(
            "DELETE FROM session_queries WHERE timestamp < ?", (cutoff,)
        )
        await db.commit()
        return cursor.rowcount


# ===========================================================================
# Model usage tracking
# ===========================================================================

# USD per million tokens
_MODEL_COSTS = {
    "claude-opus-4-5-20251101": {"input": 5.0, "output": 25.0},
    "claude-sonnet-4-5-20250929": {"input": 3.0, "output": 15.0},
    "gpt-oss-120b": {"input": 0.35, "output": 0.75},
}


async def log_model_usage(
    role: str,
    provider: str,
    model: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    preset: str | None = None,
    session_id: str | None = None,
) -> None:
    """Persist a single model call's token usage. Call after every model response."""
    costs = _MODEL_COSTS.get(model, {"input": 3.0, "output": 15.0})
    estimated_cost = (input_tokens * costs["input"] + output_tokens * costs["output"]) / 1_000_000

    try:
        async with aiosqlite.connect(_get_db_path()) as db:
            await db.execute(
                """INSERT INTO model_usage
                   (session_id, preset, role, provider, model,
                    input_tokens, output_tokens, duration_ms, estimated_cost_usd)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (session_id, preset, role, provider, model,
                 input_tokens, output_tokens, duration_ms, estimated_cost),
            )
            await db.commit()
    except Exception as e:
        # Non-critical: telemetry never fails the request
        logger.debug(f"[database] usage logging skipped: {e}")


async def get_usage_summary() -> list[dict]:
    """Aggregate token usage and cost per role/model."""
    async with aiosqlite.connect(_get_db_path()) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(
            """SELECT role, model, COUNT(*) AS calls,
                      SUM(input_tokens) AS input_tokens,
                      SUM(output_tokens) AS output_tokens,
                      ROUND(SUM(estimated_cost_usd), 6) AS estimated_cost_usd
               FROM model_usage GROUP BY role, model ORDER BY role, model"""
        )
        rows = await cursor.fetchall()
    return [dict(r) for r in rows]
