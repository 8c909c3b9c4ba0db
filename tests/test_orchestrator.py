#!/usr/bin/env python3
"""
Orchestrator Tests
===================
End-to-end runs with a scripted invoker: event order, block isolation,
terminal errors, and ordered emission under concurrent generation.

Zero LLM calls — scripted invoker only.
"""
from __future__ import annotations
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from support import (
    FakeInvoker, SMOOTHIE_INTENT, SMOOTHIE_REASONING, as_json, check, content_reply, fresh_db,
    run_all, sample_store,
)

from blendoracle import events
from blendoracle.content_generator import FAILED_BLOCK_TEXT
from blendoracle.events import EventChannel
from blendoracle.model_factory import ModelInvocationError
from blendoracle.orchestrator import Orchestrator
from blendoracle.session_context import SessionContextStore

QUERY = "quick smoothie for kids"
EXPECTED_BLOCKS = ["hero", "recipe-cards", "product-cards", "follow-up"]


def _invoker(content=content_reply) -> FakeInvoker:
    return FakeInvoker({
        "classification": as_json(SMOOTHIE_INTENT),
        "reasoning": as_json(SMOOTHIE_REASONING),
        "content": content,
    })


def _run(orchestrator: Orchestrator, **kwargs):
    channel = EventChannel()
    result = asyncio.run(orchestrator.run(QUERY, channel, **kwargs))
    return result, channel


def _skeleton(channel: EventChannel) -> list[str]:
    """Event names without the interleaved image-ready events."""
    return [e.event for e in channel.history if e.event != events.IMAGE_READY]


def _expected_skeleton(block_count: int) -> list[str]:
    return (
        [events.GENERATION_START, events.REASONING_START]
        + [events.REASONING_STEP] * 3
        + [events.REASONING_COMPLETE]
        + [events.BLOCK_START, events.BLOCK_CONTENT, events.BLOCK_RATIONALE] * block_count
        + [events.GENERATION_COMPLETE]
    )


# ── Happy path ──────────────────────────────────────────────────────────

def test_end_to_end():
    print("\n── End to end: 'quick smoothie for kids' ──")
    fresh_db()
    sessions = SessionContextStore()
    orchestrator = Orchestrator(_invoker(), store=sample_store(), sessions=sessions, image_wait=1.0)
    result, channel = _run(orchestrator, session_id="kid-session", generated_path="/smoothies/quick-abc123")

    check("Run returned a result", result is not None)
    check("Event order", _skeleton(channel) == _expected_skeleton(len(EXPECTED_BLOCKS)), str(_skeleton(channel)))
    check("Channel closed", channel.closed and channel.terminated)

    starts = [e.data for e in channel.history if e.event == events.BLOCK_START]
    check("Block start order and indices", [(s["blockType"], s["index"]) for s in starts] ==
          list(zip(EXPECTED_BLOCKS, range(len(EXPECTED_BLOCKS)))))

    first = channel.history[0].data
    check("generation-start payload", first == {"query": QUERY, "estimatedBlocks": 5})
    reasoning_start = channel.history[1].data
    check("reasoning-start names model and preset", reasoning_start == {"model": "fake-reasoning", "preset": "test"})

    complete = channel.history[-1].data
    check("blockTypes match emitted order", complete["recommendations"]["blockTypes"] == EXPECTED_BLOCKS)
    check("Summary intent", complete["intent"]["intentType"] == "use-case")
    check("Summary follow-ups", complete["reasoning"]["suggestedFollowUps"] == SMOOTHIE_REASONING["userJourney"]["suggestedFollowUps"])
    check("Summary products and recipes", complete["recommendations"]["products"]
          and complete["recommendations"]["recipes"])
    check("totalBlocks", complete["totalBlocks"] == len(EXPECTED_BLOCKS))

    contents = [e.data for e in channel.history if e.event == events.BLOCK_CONTENT]
    check("Hero in a dark section", contents[0].get("sectionStyle") == "dark")
    check("Images tagged in markup", 'data-gen-image="b0-img0"' in contents[0]["html"])

    images = [e for e in channel.history if e.event == events.IMAGE_READY]
    check("One image-ready per generated image", sorted(e.data["imageId"] for e in images) ==
          ["b0-img0", "b1-img0", "b2-img0"], str([e.data for e in images]))
    check("Image URLs absolute", all(e.data["url"].startswith("https://") for e in images))

    history = asyncio.run(sessions.history("kid-session"))
    check("Session updated", len(history) == 1 and history[0]["generatedPath"] == "/smoothies/quick-abc123")


def test_history_reaches_classifier():
    print("\n── History passed through ──")
    invoker = _invoker()
    history = [{"query": "best blender for soup", "intent": "use-case"}]
    _run(Orchestrator(invoker, store=sample_store(), image_wait=0.5), history=history)
    user = invoker.calls_for("classification")[0][1]["content"]
    check("Classifier sees the earlier query", "best blender for soup" in user)
    check("Reasoning sees it too", "best blender for soup" in invoker.calls_for("reasoning")[0][1]["content"])


# ── Failures ────────────────────────────────────────────────────────────

def test_failing_block_isolated():
    print("\n── One failing block ──")

    def content(messages):
        if 'a "hero" block' in messages[0]["content"]:
            raise ModelInvocationError("hero model unavailable")
        return content_reply(messages)

    result, channel = _run(Orchestrator(_invoker(content), store=sample_store(), image_wait=0.5))
    names = [e.event for e in channel.history]
    check("No error event", events.ERROR not in names)
    check("Run still completes", names[-1] == events.GENERATION_COMPLETE)
    contents = [e.data["html"] for e in channel.history if e.event == events.BLOCK_CONTENT]
    check("Hero carries failure placeholder", FAILED_BLOCK_TEXT in contents[0])
    check("Other blocks generated", FAILED_BLOCK_TEXT not in contents[1])
    check("Failed block counted", result is not None and result.blocks[0].failed)


def test_classifier_and_reasoning_failures_fall_back():
    print("\n── Classifier and reasoning failures ──")
    invoker = FakeInvoker({
        "classification": ModelInvocationError("down"),
        "reasoning": "no json at all",
        "content": content_reply,
    })
    result, channel = _run(Orchestrator(invoker, store=sample_store(), image_wait=0.5))
    check("Completes on fallbacks", channel.history[-1].event == events.GENERATION_COMPLETE)
    check("Fallback plan used", result.reasoning.fallback and result.intent.intent_type == "discovery")
    check("Follow-up last", result.blocks[-1].type == "follow-up")


class BrokenInvoker(FakeInvoker):
    def config_for(self, role):
        raise RuntimeError("preset has no reasoning role")


def test_orchestration_error():
    print("\n── Orchestration error ──")
    invoker = BrokenInvoker({"classification": as_json(SMOOTHIE_INTENT)})
    result, channel = _run(Orchestrator(invoker, store=sample_store(), image_wait=0.5))
    names = [e.event for e in channel.history]
    check("Run returned None", result is None)
    check("Started then errored", names == [events.GENERATION_START, events.ERROR], str(names))
    last = channel.history[-1].data
    check("Error code", last.get("code") == events.ORCHESTRATION_ERROR)
    check("Error message", "no reasoning role" in last.get("message", ""))
    check("Channel closed", channel.closed)


# ── Concurrency ─────────────────────────────────────────────────────────

class SlowContentInvoker(FakeInvoker):
    """Earlier blocks take longer, so completion order is the reverse of selection order."""

    DELAYS = {"hero": 0.15, "recipe-cards": 0.08, "product-cards": 0.01}

    def __init__(self, replies):
        super().__init__(replies)
        self.finished: list[str] = []

    async def call(self, role, messages):
        if role == "content":
            block_type = messages[0]["content"].split('"', 2)[1]
            await asyncio.sleep(self.DELAYS.get(block_type, 0))
            self.finished.append(block_type)
        return await super().call(role, messages)


def test_concurrent_generation_keeps_order():
    print("\n── Concurrent generation ──")
    invoker = SlowContentInvoker({
        "classification": as_json(SMOOTHIE_INTENT),
        "reasoning": as_json(SMOOTHIE_REASONING),
        "content": content_reply,
    })
    result, channel = _run(Orchestrator(invoker, store=sample_store(), concurrency=3, image_wait=1.0))
    check("Blocks finished out of order", invoker.finished == ["product-cards", "recipe-cards", "hero"],
          str(invoker.finished))
    check("Event order unchanged", _skeleton(channel) == _expected_skeleton(len(EXPECTED_BLOCKS)))
    starts = [e.data["blockType"] for e in channel.history if e.event == events.BLOCK_START]
    check("Blocks emitted in selection order", starts == EXPECTED_BLOCKS)
    check("blockTypes match", channel.history[-1].data["recommendations"]["blockTypes"] == EXPECTED_BLOCKS)


# ── Timing and session bookkeeping ──────────────────────────────────────

class SlowClassifierInvoker(FakeInvoker):
    async def call(self, role, messages):
        if role == "classification":
            await asyncio.sleep(0.2)
        return await super().call(role, messages)


class ChannelAwareSessions:
    """Records whether the stream had already ended when the session was written."""

    def __init__(self, channel: EventChannel, fail: bool = False):
        self.channel = channel
        self.fail = fail
        self.seen_terminated: list[bool] = []

    async def record(self, session_id, query, intent, generated_path=None):
        self.seen_terminated.append(self.channel.terminated)
        if self.fail:
            raise RuntimeError("session table locked")


def test_reasoning_duration_and_session_order():
    print("\n── Reasoning duration and session order ──")
    invoker = SlowClassifierInvoker({
        "classification": as_json(SMOOTHIE_INTENT),
        "reasoning": as_json(SMOOTHIE_REASONING),
        "content": content_reply,
    })
    channel = EventChannel()
    sessions = ChannelAwareSessions(channel)
    orchestrator = Orchestrator(invoker, store=sample_store(), sessions=sessions, image_wait=0.5)
    asyncio.run(orchestrator.run(QUERY, channel, session_id="timed"))

    reasoning = next(e.data for e in channel.history if e.event == events.REASONING_COMPLETE)
    complete = channel.history[-1].data
    check("Reasoning duration excludes classification", reasoning["duration"] < 200, str(reasoning))
    check("Total duration includes classification", complete["duration"] >= 200, str(complete))
    check("Reasoning duration within total", reasoning["duration"] <= complete["duration"])
    check("Session recorded after generation-complete", sessions.seen_terminated == [True])

    channel = EventChannel()
    failing = ChannelAwareSessions(channel, fail=True)
    result = asyncio.run(Orchestrator(_invoker(), store=sample_store(), sessions=failing, image_wait=0.5)
                         .run(QUERY, channel, session_id="locked"))
    names = [e.event for e in channel.history]
    check("Session failure does not break the run", result is not None
          and names[-1] == events.GENERATION_COMPLETE and events.ERROR not in names, str(names))


if __name__ == "__main__":
    run_all("ORCHESTRATOR TESTS", [
        test_end_to_end,
        test_history_reaches_classifier,
        test_failing_block_isolated,
        test_classifier_and_reasoning_failures_fall_back,
        test_orchestration_error,
        test_concurrent_generation_keeps_order,
        test_reasoning_duration_and_session_order,
    ])
