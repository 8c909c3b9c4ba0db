#!/usr/bin/env python3
"""
Session Context Tests
======================
The client-held ``ctx`` parameter and the SQLite-backed server-side store.

Zero LLM calls. Uses a throwaway database file.
"""
from __future__ import annotations
import asyncio
import json
import sys
import time
from pathlib import Path
from urllib.parse import quote

sys.path.insert(0, str(Path(__file__).parent.parent))

from support import check, fresh_db, run_all

import blendoracle.database as database
from blendoracle.models import IntentClassification, IntentEntities
from blendoracle.session_context import SessionContext, SessionContextStore, decode_ctx_param


# ── ctx parameter ───────────────────────────────────────────────────────

def test_ctx_param():
    print("\n── ctx parameter ──")
    ctx = SessionContext()
    for i in range(12):
        ctx.add_query({"query": f"q{i}", "intent": "discovery",
                       "entities": {"products": ["x5"] if i % 2 else [], "ingredients": [], "goals": []}})
    check("Capped at ten", len(ctx.queries) == 10 and ctx.queries[0]["query"] == "q2")
    check("Entities kept per entry", [q["entities"]["products"] for q in ctx.queries][:2] == [[], ["x5"]])

    decoded = decode_ctx_param(ctx.encode())
    check("Encoded ctx decodes", [q["query"] for q in decoded] == [f"q{i}" for i in range(2, 12)])

    raw_json = json.dumps({"previousQueries": [{"query": "soup", "intent": "use-case"}]})
    check("Unencoded JSON accepted", decode_ctx_param(raw_json)[0]["intent"] == "use-case")
    check("Missing entities filled", decode_ctx_param(quote(raw_json))[0]["entities"] ==
          {"products": [], "ingredients": [], "goals": []})

    check("Malformed ctx ignored", decode_ctx_param("%7Bnot-json") == [])
    check("Wrong shape ignored", decode_ctx_param(json.dumps({"previousQueries": "soup"})) == [])
    check("Missing ctx", decode_ctx_param(None) == [])

    oversized = json.dumps({"previousQueries": [{"query": f"q{i}"} for i in range(15)]})
    check("Decoded history capped", len(decode_ctx_param(oversized)) == 10)


# ── Server-side store ───────────────────────────────────────────────────

def test_store_record_and_history():
    print("\n── Store: record and history ──")
    fresh_db()
    store = SessionContextStore(max_entries=3)
    intent = IntentClassification(intent_type="use-case",
                                  entities=IntentEntities(use_cases=["smoothies"], ingredients=["banana"]))

    async def scenario():
        for i in range(5):
            await store.record("s1", f"query {i}", intent, generated_path=f"/smoothies/p{i}" if i == 4 else None)
        await store.record("s2", "other session", None)
        return await store.history("s1"), await store.history("s2"), await store.context("s1")

    history, other, ctx = asyncio.run(scenario())
    check("Trimmed to newest entries", [h["query"] for h in history] == ["query 2", "query 3", "query 4"])
    check("Entities stored as goals", history[-1]["entities"]["goals"] == ["smoothies"]
          and history[-1]["entities"]["ingredients"] == ["banana"])
    check("Generated path stored", history[-1]["generatedPath"] == "/smoothies/p4")
    check("Sessions isolated", [h["query"] for h in other] == ["other session"])
    check("Missing intent recorded as general", other[0]["intent"] == "general")
    check("Context view", [q["query"] for q in ctx.queries] == ["query 2", "query 3", "query 4"])


def test_store_expiry():
    print("\n── Store: expiry ──")
    fresh_db()
    store = SessionContextStore(ttl_hours=24)

    async def scenario():
        await database.append_session_query("old", "stale question", "discovery", {}, None,
                                            time.time() - 48 * 3600, 10)
        await store.record("new", "fresh question", IntentClassification())
        history_before = await store.history("old")
        removed = await store.purge_expired()
        updated = await store.set_generated_path("new", "fresh question", "/discover/fresh-abc123")
        fresh = await store.history("new")
        deleted = await store.expire("new")
        return history_before, removed, updated, fresh, deleted, await store.history("new")

    before, removed, updated, fresh, deleted, after = asyncio.run(scenario())
    check("Expired entries hidden", before == [])
    check("Purge removes expired rows", removed == 1)
    check("Generated path set later", updated and fresh[0]["generatedPath"] == "/discover/fresh-abc123")
    check("Expire deletes the session", deleted == 1 and after == [])


if __name__ == "__main__":
    run_all("SESSION CONTEXT TESTS", [
        test_ctx_param,
        test_store_record_and_history,
        test_store_expiry,
    ])
