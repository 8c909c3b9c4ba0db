from __future__ import annotations
"""
Blendoracle — Session Context
==============================
A rolling, append-only log of a session's previous queries (query, intent,
entities, published path), capped at the 10 most recent entries.

Two homes for the same data:
  - SessionContext: the client-held copy, shipped back on every request as
    the ``ctx`` parameter (URL-encoded ``{"previousQueries": [...]}``)
  - SessionContextStore: the server-side copy in SQLite, keyed by session id,
    updated after each completed run and purged after SESSION_TTL_HOURS
"""

import json
import logging
import time
from dataclasses import dataclass, field
from urllib.parse import quote, unquote

from blendoracle import database
from blendoracle.config import SESSION_MAX_QUERIES, SESSION_TTL_HOURS
from blendoracle.models import IntentClassification

logger = logging.getLogger(__name__)


def entities_from_intent(intent: IntentClassification | None) -> dict:
    """History-entry entities: products, ingredients and goals (use cases)."""
    if intent is None:
        return {"products": [], "ingredients": [], "goals": []}
    return {
        "products": list(intent.entities.products),
        "ingredients": list(intent.entities.ingredients),
        "goals": list(intent.entities.use_cases),
    }


def normalize_entry(entry: dict) -> dict:
    entities = entry.get("entities") if isinstance(entry.get("entities"), dict) else {}
    return {
        "query": str(entry.get("query") or ""),
        "timestamp": entry.get("timestamp") or time.time(),
        "intent": entry.get("intent") or "general",
        "entities": {
            "products": list(entities.get("products") or []),
            "ingredients": list(entities.get("ingredients") or []),
            "goals": list(entities.get("goals") or []),
        },
        "generatedPath": entry.get("generatedPath") or "",
    }


@dataclass
class SessionContext:
    queries: list[dict] = field(default_factory=list)
    session_start: float = field(default_factory=time.time)
    last_updated: float = field(default_factory=time.time)

    def add_query(self, entry: dict):
        self.queries.append(normalize_entry(entry))
        if len(self.queries) > SESSION_MAX_QUERIES:
            self.queries = self.queries[-SESSION_MAX_QUERIES:]
        self.last_updated = time.time()

    def to_ctx_param(self) -> dict:
        return {
            "previousQueries": [
                {"query": q["query"], "intent": q["intent"], "entities": q["entities"]}
                for q in self.queries[-SESSION_MAX_QUERIES:]
            ]
        }

    def encode(self) -> str:
        """URL-encoded ctx parameter value."""
        return quote(json.dumps(self.to_ctx_param(), separators=(",", ":")), safe="")


def decode_ctx_param(raw: str | None) -> list[dict]:
    """Parse a ``ctx`` parameter into history entries. Malformed input yields []."""
    if not raw:
        return []
    data = None
    for candidate in (raw, unquote(raw)):
        try:
            data = json.loads(candidate)
            break
        except (json.JSONDecodeError, TypeError):
            continue
    if not isinstance(data, dict) or not isinstance(data.get("previousQueries"), list):
        logger.warning("[session] ignoring malformed ctx parameter")
        return []
    entries = [normalize_entry(q) for q in data["previousQueries"] if isinstance(q, dict)]
    return entries[-SESSION_MAX_QUERIES:]


# ---------------------------------------------------------------------------
# Server-side store
# ---------------------------------------------------------------------------

class SessionContextStore:
    """SQLite-backed session history (see database.session_queries)."""

    def __init__(self, max_entries: int = SESSION_MAX_QUERIES, ttl_hours: float = SESSION_TTL_HOURS):
        self.max_entries = max_entries
        self.ttl_hours = ttl_hours

    async def history(self, session_id: str) -> list[dict]:
        entries = await database.get_session_queries(session_id, self.max_entries)
        cutoff = time.time() - self.ttl_hours * 3600
        return [normalize_entry(e) for e in entries if (e.get("timestamp") or 0) >= cutoff]

    async def context(self, session_id: str) -> SessionContext:
        ctx = SessionContext()
        for entry in await self.history(session_id):
            ctx.add_query(entry)
        return ctx

    async def record(self, session_id: str, query: str, intent: IntentClassification | None,
                     generated_path: str | None = None) -> None:
        await database.append_session_query(
            session_id=session_id,
            query=query,
            intent=intent.intent_type if intent else None,
            entities=entities_from_intent(intent),
            generated_path=generated_path,
            timestamp=time.time(),
            max_entries=self.max_entries,
        )

    async def set_generated_path(self, session_id: str, query: str, path: str) -> bool:
        return await database.set_generated_path(session_id, query, path)

    async def expire(self, session_id: str) -> int:
        return await database.delete_session(session_id)

    async def purge_expired(self) -> int:
        removed = await database.purge_expired_sessions(self.ttl_hours)
        if removed:
            logger.info(f"[session] purged {removed} expired entries")
        return removed
