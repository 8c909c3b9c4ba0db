#!/usr/bin/env python3
"""
HTTP Route Tests
=================
The FastAPI surface through TestClient: health and presets, the SSE
generate stream, persist, and the session endpoints.

Zero LLM calls (scripted invoker), no network (mock publish backend).
"""
from __future__ import annotations
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx
from fastapi.testclient import TestClient

from support import (
    FakeInvoker, SMOOTHIE_INTENT, SMOOTHIE_REASONING, as_json, check, content_reply, fresh_db,
    run_all, sample_store,
)
from test_publish import STORE, FakeBackend, _tokens

from main import app
import blendoracle.database as database
from blendoracle import events
from blendoracle.client import PageAssembler, consume_stream, parse_sse
from blendoracle.content.store import set_store
from blendoracle.publish.pipeline import PublishPipeline
from blendoracle.routes import generate as generate_route
from blendoracle.routes import persist as persist_route
from blendoracle.session_context import decode_ctx_param

client = TestClient(app)


def _setup():
    fresh_db()
    set_store(sample_store())
    generate_route.invoker_factory = lambda preset, session: FakeInvoker({
        "classification": as_json(SMOOTHIE_INTENT),
        "reasoning": as_json(SMOOTHIE_REASONING),
        "content": content_reply,
    })


# ── Basics ──────────────────────────────────────────────────────────────

def test_health_and_presets():
    print("\n── Health and presets ──")
    r = client.get("/api/health")
    check("Health ok", r.status_code == 200 and r.json()["status"] == "ok")

    r = client.get("/api/presets")
    data = r.json()
    check("Presets listed", set(data["presets"]) == {"production", "fast", "all-cerebras"}, str(data))
    check("Roles resolved to models", all(p["roles"].get("reasoning") for p in data["presets"].values()))


def test_usage_summary():
    print("\n── /api/usage ──")
    fresh_db()
    asyncio.run(database.log_model_usage("content", "cerebras", "test-model", input_tokens=1000, output_tokens=500))
    asyncio.run(database.log_model_usage("content", "cerebras", "test-model", input_tokens=1000, output_tokens=500))
    r = client.get("/api/usage")
    rows = r.json()["usage"]
    check("One aggregated row", len(rows) == 1, str(rows))
    check("Calls and tokens summed", rows[0]["calls"] == 2 and rows[0]["input_tokens"] == 2000
          and rows[0]["output_tokens"] == 1000)
    check("Cost estimated", rows[0]["estimated_cost_usd"] > 0)


def test_generate_requires_query():
    print("\n── /generate validation ──")
    check("Missing query is 400", client.get("/generate").status_code == 400)
    check("Markup-only query is 400", client.get("/generate", params={"query": "<b> </b>"}).status_code == 400)


# ── Generate stream ─────────────────────────────────────────────────────

def test_generate_stream():
    print("\n── /generate stream ──")
    _setup()
    r = client.get("/generate", params={"query": "quick smoothie for kids", "session": "route-session",
                                        "slug": "/smoothies/quick-smoothie-kids-abc123"})
    check("200 OK", r.status_code == 200)
    check("SSE content type", r.headers["content-type"].startswith("text/event-stream"))
    check("No caching", r.headers.get("cache-control") == "no-cache"
          and r.headers.get("x-accel-buffering") == "no")

    parsed = parse_sse(r.text)
    names = [e.event for e in parsed]
    check("Starts with generation-start", names[0] == events.GENERATION_START)
    check("Ends with generation-complete", names[-1] == events.GENERATION_COMPLETE, str(names[-3:]))
    check("Query stripped of markup", parsed[0].data["query"] == "quick smoothie for kids")

    assembler = PageAssembler(retry_interval=0)
    for event in parsed:
        assembler.handle(event)
    assembler.images.tick()
    check("Assembled every block", [b.type for b in assembler.blocks] ==
          ["hero", "recipe-cards", "product-cards", "follow-up"])
    check("Images bound", 'src="https://' in assembler.blocks[0].html and not assembler.images.pending)

    r = client.get("/api/sessions/route-session/context")
    data = r.json()
    check("Session recorded", [q["query"] for q in data["queries"]] == ["quick smoothie for kids"])
    check("Slug stored as generated path", data["queries"][0]["generatedPath"] == "/smoothies/quick-smoothie-kids-abc123")
    check("Encoded ctx round-trips", decode_ctx_param(data["encoded"])[0]["query"] == "quick smoothie for kids")

    r = client.delete("/api/sessions/route-session")
    check("Session deleted", r.json() == {"status": "deleted", "removed": 1})
    check("History gone", client.get("/api/sessions/route-session/context").json()["queries"] == [])


def test_generate_uses_ctx_history():
    print("\n── /generate with ctx ──")
    _setup()
    seen = []

    def factory(preset, session):
        invoker = FakeInvoker({
            "classification": as_json(SMOOTHIE_INTENT),
            "reasoning": as_json(SMOOTHIE_REASONING),
            "content": content_reply,
        })
        seen.append((preset, invoker))
        return invoker

    generate_route.invoker_factory = factory
    ctx = '{"previousQueries":[{"query":"which blender makes hot soup","intent":"use-case"}]}'
    r = client.get("/generate", params={"query": "and for smoothies?", "ctx": ctx, "preset": "fast"})
    check("Stream completed", parse_sse(r.text)[-1].event == events.GENERATION_COMPLETE)
    preset, invoker = seen[0]
    check("Preset passed to the factory", preset == "fast")
    check("ctx history reaches the classifier",
          "which blender makes hot soup" in invoker.calls_for("classification")[0][1]["content"])


# ── Persist ─────────────────────────────────────────────────────────────

def _persist_body() -> dict:
    return {
        "query": "quick smoothie for kids",
        "blocks": [{"html": '<div class="hero"><h1>Smoothies</h1></div>', "sectionStyle": "dark"}],
        "intent": {"intentType": "use-case"},
    }


def _pipeline(backend: FakeBackend) -> PublishPipeline:
    http = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    return PublishPipeline(tokens=_tokens(http), http_client=http, mirror_images=False,
                           poll_attempts=1, poll_interval=0, **STORE)


def test_persist():
    print("\n── /api/persist ──")
    persist_route.publish_pipeline = _pipeline(FakeBackend())
    try:
        r = client.post("/api/persist", json=_persist_body())
        data = r.json()
        check("Published", r.status_code == 200 and data["success"], str(data))
        check("Path under smoothies", data["path"].startswith("/smoothies/quick-smoothie-kids-"))
        check("URLs returned", set(data["urls"]) == {"preview", "live"})
        check("No error key on success", "error" not in data)

        persist_route.publish_pipeline = _pipeline(FakeBackend(fail={"/live/": 502}))
        r = client.post("/api/persist", json=_persist_body())
        data = r.json()
        check("Failure reported in body", r.status_code == 200 and data["success"] is False and data["error"])
        check("Failure shape", set(data) == {"success", "error"})

        r = client.post("/api/persist", json={"query": "x", "blocks": []})
        check("Empty block list rejected", r.status_code == 422)
    finally:
        persist_route.publish_pipeline = None


def test_persist_records_session_path():
    print("\n── /api/persist with sessionId ──")
    fresh_db()
    sessions = generate_route.session_store
    asyncio.run(sessions.record("persist-session", "quick smoothie for kids", None))
    persist_route.publish_pipeline = _pipeline(FakeBackend())
    try:
        r = client.post("/api/persist", json={**_persist_body(), "sessionId": "persist-session"})
        data = r.json()
        check("Published", data["success"], str(data))
        history = asyncio.run(sessions.history("persist-session"))
        check("Path recorded on the session entry", history[-1]["generatedPath"] == data["path"], str(history))

        persist_route.publish_pipeline = _pipeline(FakeBackend())
        r = client.post("/api/persist", json={**_persist_body(), "sessionId": "unknown-session"})
        check("Unknown session does not fail the publish", r.json()["success"])
    finally:
        persist_route.publish_pipeline = None


# ── Python client ───────────────────────────────────────────────────────

def test_consume_stream_and_assemble():
    print("\n── consume_stream → assemble → persist ──")
    _setup()

    async def run():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://blendoracle.test") as http:
            return await consume_stream("http://blendoracle.test", "quick smoothie for kids",
                                        assembler=PageAssembler(retry_interval=0.01), http_client=http)

    assembler = asyncio.run(run())
    check("Stream completed", assembler.done and assembler.error is None)
    check("Every block assembled", [b.type for b in assembler.blocks] ==
          ["hero", "recipe-cards", "product-cards", "follow-up"])
    check("No unbound images", not assembler.images.pending and not assembler.images.dropped)

    body = assembler.assemble(title="Smoothies for kids")
    check("Persist body carries query and intent", body["query"] == "quick smoothie for kids"
          and body["intent"]["intentType"] == "use-case")
    check("Hero keeps its dark section", body["blocks"][0]["sectionStyle"] == "dark")

    persist_route.publish_pipeline = _pipeline(FakeBackend())
    try:
        r = client.post("/api/persist", json=body)
        check("Assembled page publishes", r.json()["success"], str(r.json()))
    finally:
        persist_route.publish_pipeline = None


if __name__ == "__main__":
    run_all("HTTP ROUTE TESTS", [
        test_health_and_presets,
        test_usage_summary,
        test_generate_requires_query,
        test_generate_stream,
        test_generate_uses_ctx_history,
        test_persist,
        test_persist_records_session_path,
        test_consume_stream_and_assemble,
    ])
