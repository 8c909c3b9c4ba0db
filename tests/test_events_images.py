#!/usr/bin/env python3
"""
Event Stream & Image Tests
===========================
Channel discipline, SSE framing, image tagging and resolution, and
consumer-side reconciliation of image-ready events that race their blocks.

Zero LLM calls, no network.
"""
from __future__ import annotations
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from support import check, run_all

from blendoracle import events
from blendoracle.client import PageAssembler, SSEParser, parse_sse
from blendoracle.events import ChannelClosed, EventChannel, SSEEvent
from blendoracle.images import ImagePlaceholder, ImageResolver, ImageRetryQueue, tag_images


async def _collect(channel: EventChannel) -> list[SSEEvent]:
    return [event async for event in channel]


# ── Channel ─────────────────────────────────────────────────────────────

def test_channel_rules():
    print("\n── Channel rules ──")

    async def scenario():
        channel = EventChannel()
        try:
            await channel.emit(events.block_start("hero", 0))
            first_ok = False
        except ValueError:
            first_ok = True
        check("Non-start first event rejected", first_ok)

        await channel.emit(events.generation_start("q", 5))
        await channel.emit(events.block_start("hero", 0))
        await channel.emit(events.generation_complete(1, 10, {}, {}, {}))
        check("Terminal event ends the stream", channel.terminated)

        try:
            await channel.emit(events.image_ready("b0-img0", "https://x/y.png"))
            rejected = False
        except ChannelClosed:
            rejected = True
        check("Emit after terminal raises", rejected)
        check("try_emit after terminal is dropped", not await channel.try_emit(events.error("late")))

        channel.close()
        channel.close()
        received = await _collect(channel)
        check("Consumer sees events in order", [e.event for e in received] ==
              [events.GENERATION_START, events.BLOCK_START, events.GENERATION_COMPLETE])

        bare = EventChannel()
        await bare.emit(events.error("boom", events.ORCHESTRATION_ERROR))
        check("Error may be the first event", bare.terminated)

        silent = EventChannel()
        silent.close()
        check("Close wakes an empty consumer", await _collect(silent) == [])

    asyncio.run(scenario())


def test_encoding():
    print("\n── SSE encoding ──")
    frame = events.block_content('<div class="hero">é\n</div>', "dark").encode()
    lines = frame.split("\n")
    check("event line", lines[0] == "event: block-content")
    check("single-line JSON data", lines[1].startswith("data: {") and lines[2] == "" and frame.endswith("\n\n"))

    parsed = parse_sse(frame)
    check("Round trip through the parser", parsed[0].data == {"html": '<div class="hero">é\n</div>',
                                                              "sectionStyle": "dark"})
    check("Default section style omitted", "sectionStyle" not in events.block_content("<p/>").data)
    check("Error code optional", "code" not in events.error("x").data)

    try:
        SSEEvent("made-up-event")
        unknown_rejected = False
    except ValueError:
        unknown_rejected = True
    check("Closed set of event names", unknown_rejected)


def test_incremental_parser():
    print("\n── Incremental parser ──")
    wire = events.generation_start("q", 5).encode() + events.block_start("hero", 0).encode()
    parser = SSEParser()
    out = []
    for i in range(0, len(wire), 7):
        out.extend(parser.feed(wire[i:i + 7]))
    check("Chunked frames reassembled", [e.event for e in out] == [events.GENERATION_START, events.BLOCK_START])
    check("Garbage frame skipped", parse_sse("event: block-start\ndata: {not json\n\n") == [])
    check("Comment lines ignored", parse_sse(": keep-alive\n\n") == [])


# ── Image tagging and resolution ────────────────────────────────────────

def test_tag_images():
    print("\n── tag_images ──")
    markup = ('<div><img src="/media/a.png" alt="a"><img alt="icon" src="/icons/leaf.svg">'
              '<img src="https://cdn.example.com/b.jpg"/></div>')
    tagged, placeholders = tag_images(markup, 3)
    check("Ids per block and position", [p.image_id for p in placeholders] == ["b3-img0", "b3-img1"])
    check("Local icons skipped", 'src="/icons/leaf.svg"' in tagged)
    check("Source parked in data-src", 'data-gen-image="b3-img0" data-src="/media/a.png"' in tagged)
    check("No live src on tagged images", 'src="/media/a.png"' not in tagged.replace("data-src", "data-x"))

    again, more = tag_images(tagged, 3)
    check("Tagging is idempotent", again == tagged and more == [])


def test_image_resolver():
    print("\n── ImageResolver ──")

    async def scenario(verify: bool, transport=None):
        emitted = []

        async def sink(event):
            emitted.append(event)
            return True

        client = httpx.AsyncClient(transport=transport) if transport else None
        resolver = ImageResolver(sink, verify=verify, http_client=client)
        resolver.schedule([
            ImagePlaceholder("b0-img0", "/media/recipes/vitamix-logo.png"),
            ImagePlaceholder("b0-img1", "https://cdn.example.com/missing.jpg"),
            ImagePlaceholder("b0-img2", "https://cdn.example.com/ok.jpg"),
        ], fallback_url="/media/catalog/product/ascent-x5-brushed-stainless.png")
        cancelled = await resolver.drain(1.0)
        if client is not None:
            await client.aclose()
        return {e.data["imageId"]: e.data["url"] for e in emitted}, cancelled

    fallback = "https://www.vitamix.com/media/catalog/product/ascent-x5-brushed-stainless.png"
    urls, cancelled = asyncio.run(scenario(verify=False))
    check("All tasks finished in time", cancelled == 0)
    check("Placeholder replaced by fallback", urls["b0-img0"] == fallback)
    check("Unverified URL kept", urls["b0-img1"] == "https://cdn.example.com/missing.jpg")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404 if "missing" in str(request.url) else 200)

    urls, _ = asyncio.run(scenario(verify=True, transport=httpx.MockTransport(handler)))
    check("Unreachable URL replaced by fallback", urls["b0-img1"] == fallback)
    check("Reachable URL kept", urls["b0-img2"] == "https://cdn.example.com/ok.jpg")

    async def slow():
        async def sink(event):
            return True

        resolver = ImageResolver(sink)

        async def stuck(src, fallback_url=None):
            await asyncio.sleep(10)

        resolver.resolve_url = stuck
        resolver.schedule([ImagePlaceholder("b1-img0", "/media/x.png")])
        return await resolver.drain(0.05)

    check("Slow tasks cancelled at the deadline", asyncio.run(slow()) == 1)


def test_retry_queue():
    print("\n── ImageRetryQueue ──")
    present: set[str] = set()
    bound: dict[str, str] = {}

    def bind(image_id, url):
        if image_id in present:
            bound[image_id] = url
            return True
        return False

    queue = ImageRetryQueue(bind, interval=0, max_attempts=3)
    check("Missing element queued", not queue.offer("b0-img0", "u0") and "b0-img0" in queue.pending)
    present.add("b0-img0")
    check("Bound on next tick", queue.tick() == ["b0-img0"] and bound["b0-img0"] == "u0")

    queue.offer("b9-img0", "u9")
    for _ in range(3):
        queue.tick()
    check("Dropped after max attempts", queue.dropped == ["b9-img0"] and not queue.pending)


def test_assembler_reconciliation():
    print("\n── PageAssembler reconciliation ──")
    assembler = PageAssembler(retry_interval=0, max_attempts=5)
    tagged, _ = tag_images('<div class="hero"><img src="/media/a.png" alt="a"></div>', 0)
    stream = [
        events.generation_start("q", 5),
        events.block_start("hero", 0),
        events.image_ready("b0-img0", "https://cdn.example.com/a.png"),
        events.block_content(tagged, "dark"),
        events.block_rationale("hero", "Lead with it"),
        events.generation_complete(1, 5, {"intentType": "use-case"}, {}, {}),
    ]
    wire = "".join(e.encode() for e in stream)
    for event in parse_sse(wire):
        assembler.handle(event)

    check("Early image-ready pending", "b0-img0" in assembler.images.pending)
    assembler.images.tick()
    check("Bound once the block arrived", 'src="https://cdn.example.com/a.png"' in assembler.blocks[0].html)
    check("Rationale attached", assembler.blocks[0].rationale == "Lead with it")
    check("Stream done", assembler.done)

    body = assembler.assemble(title="Smoothies")
    check("Persist body", body["query"] == "q" and body["blocks"][0]["sectionStyle"] == "dark"
          and body["intent"] == {"intentType": "use-case"} and body["title"] == "Smoothies")


if __name__ == "__main__":
    run_all("EVENT STREAM & IMAGE TESTS", [
        test_channel_rules,
        test_encoding,
        test_incremental_parser,
        test_tag_images,
        test_image_resolver,
        test_retry_queue,
        test_assembler_reconciliation,
    ])
