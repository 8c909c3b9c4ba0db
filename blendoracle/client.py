from __future__ import annotations
"""
Blendoracle — Stream Consumer
==============================
The consuming end of ``GET /generate``: parses SSE frames back into events,
assembles the page block by block and binds ``image-ready`` URLs to the
``data-gen-image`` elements they name, with the bounded retry queue for ids
whose markup has not arrived yet.

``PageAssembler.assemble()`` produces the body for ``POST /api/persist``.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass

import httpx

from blendoracle import events
from blendoracle.config import (
    IMAGE_RETRY_INTERVAL_SECONDS, IMAGE_RETRY_MAX_ATTEMPTS, MODEL_TIMEOUT_SECONDS,
)
from blendoracle.events import SSEEvent
from blendoracle.images import IMAGE_ID_ATTR, ImageRetryQueue

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# SSE parsing
# ---------------------------------------------------------------------------

class SSEParser:
    """Incremental parser: feed text chunks, get complete events back."""

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> list[SSEEvent]:
        self._buffer += chunk.replace("\r\n", "\n")
        parsed = []
        while "\n\n" in self._buffer:
            frame, self._buffer = self._buffer.split("\n\n", 1)
            event = self._parse_frame(frame)
            if event is not None:
                parsed.append(event)
        return parsed

    @staticmethod
    def _parse_frame(frame: str) -> SSEEvent | None:
        name = "message"
        data_lines = []
        for line in frame.split("\n"):
            if not line or line.startswith(":"):
                continue
            field_name, _, value = line.partition(":")
            value = value[1:] if value.startswith(" ") else value
            if field_name == "event":
                name = value
            elif field_name == "data":
                data_lines.append(value)
        if not data_lines and name == "message":
            return None
        try:
            data = json.loads("\n".join(data_lines)) if data_lines else {}
            return SSEEvent(name, data if isinstance(data, dict) else {"value": data})
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"[client] skipping unreadable frame ({name}): {e}")
            return None


def parse_sse(text: str) -> list[SSEEvent]:
    return SSEParser().feed(text)


# ---------------------------------------------------------------------------
# Page assembly
# ---------------------------------------------------------------------------

@dataclass
class AssembledBlock:
    index: int
    type: str
    html: str = ""
    section_style: str | None = None
    rationale: str = ""


def _image_tag_re(image_id: str) -> re.Pattern:
    return re.compile(rf'<img\b[^>]*\b{IMAGE_ID_ATTR}="{re.escape(image_id)}"[^>]*>', re.IGNORECASE)


_SRC_RE = re.compile(r'(\s)src="[^"]*"', re.IGNORECASE)


def _with_src(tag: str, url: str) -> str:
    safe = url.replace('"', "&quot;")
    if _SRC_RE.search(tag):
        return _SRC_RE.sub(lambda m: f'{m.group(1)}src="{safe}"', tag, count=1)
    return tag.replace("<img", f'<img src="{safe}"', 1)


class PageAssembler:
    def __init__(self, retry_interval: float = IMAGE_RETRY_INTERVAL_SECONDS,
                 max_attempts: int = IMAGE_RETRY_MAX_ATTEMPTS):
        self.query: str | None = None
        self.blocks: list[AssembledBlock] = []
        self.reasoning_steps: list[dict] = []
        self.summary: dict | None = None
        self.error: dict | None = None
        self.images = ImageRetryQueue(self.bind_image, retry_interval, max_attempts)

    @property
    def done(self) -> bool:
        return self.summary is not None or self.error is not None

    def bind_image(self, image_id: str, url: str) -> bool:
        """Set ``src`` on the element carrying ``image_id``. False if no block has it yet."""
        pattern = _image_tag_re(image_id)
        for block in self.blocks:
            if pattern.search(block.html):
                block.html = pattern.sub(lambda m: _with_src(m.group(0), url), block.html, count=1)
                return True
        return False

    def handle(self, event: SSEEvent):
        data = event.data
        if event.event == events.GENERATION_START:
            self.query = data.get("query")
        elif event.event == events.REASONING_STEP:
            self.reasoning_steps.append(data)
        elif event.event == events.BLOCK_START:
            self.blocks.append(AssembledBlock(index=data.get("index", len(self.blocks)),
                                              type=data.get("blockType", "")))
        elif event.event == events.BLOCK_CONTENT:
            if not self.blocks or self.blocks[-1].html:
                logger.warning("[client] block-content without a matching block-start")
                self.blocks.append(AssembledBlock(index=len(self.blocks), type=""))
            self.blocks[-1].html = data.get("html", "")
            self.blocks[-1].section_style = data.get("sectionStyle")
        elif event.event == events.BLOCK_RATIONALE:
            if self.blocks:
                self.blocks[-1].rationale = data.get("rationale", "")
        elif event.event == events.IMAGE_READY:
            self.images.offer(data.get("imageId", ""), data.get("url", ""))
        elif event.event == events.GENERATION_COMPLETE:
            self.summary = data
        elif event.event == events.ERROR:
            logger.error(f"[client] stream error: {data.get('message')}")
            self.error = data

    def assemble(self, title: str | None = None, description: str | None = None) -> dict:
        """Persist request body for the assembled page."""
        body = {
            "query": self.query or "",
            "blocks": [
                {"html": b.html, "sectionStyle": b.section_style or "default"}
                for b in self.blocks if b.html
            ],
        }
        if self.summary and isinstance(self.summary.get("intent"), dict):
            body["intent"] = self.summary["intent"]
        if title:
            body["title"] = title
        if description:
            body["description"] = description
        return body


async def consume_stream(base_url: str, query: str, *, ctx: str | None = None,
                         preset: str | None = None, session: str | None = None,
                         assembler: PageAssembler | None = None,
                         http_client: httpx.AsyncClient | None = None) -> PageAssembler:
    """Read one ``/generate`` stream to completion and return the assembled page."""
    assembler = assembler or PageAssembler()
    params = {"query": query}
    for key, value in (("ctx", ctx), ("preset", preset), ("session", session)):
        if value:
            params[key] = value

    stop = asyncio.Event()
    retry_task = asyncio.create_task(assembler.images.run(stop))
    parser = SSEParser()
    client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(MODEL_TIMEOUT_SECONDS * 3))
    try:
        async with client.stream("GET", f"{base_url.rstrip('/')}/generate", params=params) as response:
            response.raise_for_status()
            async for chunk in response.aiter_text():
                for event in parser.feed(chunk):
                    assembler.handle(event)
                if assembler.done:
                    break
    finally:
        stop.set()
        await retry_task
        if http_client is None:
            await client.aclose()
    return assembler
