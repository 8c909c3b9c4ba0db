from __future__ import annotations
"""
Blendoracle — Event Stream
===========================
The closed set of pipeline events, their SSE wire encoding, and the
single-producer/single-consumer channel the orchestrator writes to.

Producer discipline is enforced here, not in the transport:
  - ``generation-start`` must come first
  - nothing is accepted after ``generation-complete`` or ``error``
  - ``close()`` is idempotent and always wakes the consumer
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

GENERATION_START = "generation-start"
REASONING_START = "reasoning-start"
REASONING_STEP = "reasoning-step"
REASONING_COMPLETE = "reasoning-complete"
BLOCK_START = "block-start"
BLOCK_CONTENT = "block-content"
BLOCK_RATIONALE = "block-rationale"
IMAGE_READY = "image-ready"
GENERATION_COMPLETE = "generation-complete"
ERROR = "error"

EVENT_NAMES = (
    GENERATION_START, REASONING_START, REASONING_STEP, REASONING_COMPLETE,
    BLOCK_START, BLOCK_CONTENT, BLOCK_RATIONALE, IMAGE_READY,
    GENERATION_COMPLETE, ERROR,
)
TERMINAL_EVENTS = (GENERATION_COMPLETE, ERROR)

ORCHESTRATION_ERROR = "ORCHESTRATION_ERROR"


class ChannelClosed(RuntimeError):
    """Raised when emitting into a channel that already carried its terminal event."""


@dataclass
class SSEEvent:
    event: str
    data: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.event not in EVENT_NAMES:
            raise ValueError(f"Unknown event type: {self.event}")

    @property
    def terminal(self) -> bool:
        return self.event in TERMINAL_EVENTS

    def encode(self) -> str:
        """SSE frame: ``event:`` line, single-line JSON ``data:``, blank line."""
        return f"event: {self.event}\ndata: {json.dumps(self.data, ensure_ascii=False)}\n\n"


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def generation_start(query: str, estimated_blocks: int) -> SSEEvent:
    return SSEEvent(GENERATION_START, {"query": query, "estimatedBlocks": estimated_blocks})


def reasoning_start(model: str, preset: str) -> SSEEvent:
    return SSEEvent(REASONING_START, {"model": model, "preset": preset})


def reasoning_step(stage: str, title: str, content: str) -> SSEEvent:
    return SSEEvent(REASONING_STEP, {"stage": stage, "title": title, "content": content})


def reasoning_complete(confidence: float, duration_ms: int) -> SSEEvent:
    return SSEEvent(REASONING_COMPLETE, {"confidence": confidence, "duration": duration_ms})


def block_start(block_type: str, index: int) -> SSEEvent:
    return SSEEvent(BLOCK_START, {"blockType": block_type, "index": index})


def block_content(html: str, section_style: str | None = None) -> SSEEvent:
    data = {"html": html}
    if section_style:
        data["sectionStyle"] = section_style
    return SSEEvent(BLOCK_CONTENT, data)


def block_rationale(block_type: str, rationale: str) -> SSEEvent:
    return SSEEvent(BLOCK_RATIONALE, {"blockType": block_type, "rationale": rationale})


def image_ready(image_id: str, url: str) -> SSEEvent:
    return SSEEvent(IMAGE_READY, {"imageId": image_id, "url": url})


def generation_complete(total_blocks: int, duration_ms: int, intent: dict,
                        reasoning: dict, recommendations: dict) -> SSEEvent:
    return SSEEvent(GENERATION_COMPLETE, {
        "totalBlocks": total_blocks,
        "duration": duration_ms,
        "intent": intent,
        "reasoning": reasoning,
        "recommendations": recommendations,
    })


def error(message: str, code: str | None = None) -> SSEEvent:
    data = {"message": message}
    if code:
        data["code"] = code
    return SSEEvent(ERROR, data)


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------

_CLOSE = object()


class EventChannel:
    """Ordered, unbounded queue from one producer task to one consumer.

    The producer never blocks on the consumer; if the consumer goes away the
    producer keeps emitting into the queue until it finishes.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._started = False
        self._terminated = False
        self._closed = False
        self.history: list[SSEEvent] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def terminated(self) -> bool:
        return self._terminated

    async def emit(self, event: SSEEvent) -> None:
        if self._terminated or self._closed:
            raise ChannelClosed(f"cannot emit {event.event}: stream already ended")
        if not self._started and event.event != GENERATION_START and event.event != ERROR:
            raise ValueError(f"first event must be {GENERATION_START}, got {event.event}")
        self._started = True
        if event.terminal:
            self._terminated = True
        self.history.append(event)
        await self._queue.put(event)

    async def try_emit(self, event: SSEEvent) -> bool:
        """Emit unless the stream already ended. Returns whether it was sent."""
        try:
            await self.emit(event)
            return True
        except ChannelClosed:
            logger.warning(f"[events] dropped {event.event} after stream end")
            return False

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSE)

    async def __aiter__(self):
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            yield item
            if item.terminal:
                return

    async def encoded(self):
        """Async iterator of SSE frames, for StreamingResponse."""
        async for event in self:
            yield event.encode()
