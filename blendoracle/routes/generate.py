from __future__ import annotations
"""
Blendoracle — Generate Route
"""
import asyncio
import logging
import re

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from blendoracle.content.store import get_store
from blendoracle.events import EventChannel
from blendoracle.model_factory import create_invoker
from blendoracle.orchestrator import Orchestrator
from blendoracle.session_context import SessionContextStore, decode_ctx_param

logger = logging.getLogger(__name__)

router = APIRouter()

# Swappable for tests: (preset, session_id) -> invoker
invoker_factory = create_invoker
session_store = SessionContextStore()

# Runs outlive their response if the client disconnects
_runs: set[asyncio.Task] = set()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def strip_html(text: str) -> str:
    return re.sub(r"<[^>]+>", "", text)


# Routes: Generation
# ===========================================================================

@router.get("/generate")
async def generate(query: str | None = None, slug: str | None = None, ctx: str | None = None,
                   preset: str | None = None, session: str | None = None):
    """Start a generation run and stream its events as SSE."""
    text = strip_html(query or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Missing query parameter")

    history = decode_ctx_param(ctx)
    if not history and session:
        try:
            history = await session_store.history(session)
        except Exception as e:
            logger.warning(f"[generate] session history unavailable for {session}: {e}")
            history = []

    invoker = invoker_factory(preset, session)
    orchestrator = Orchestrator(invoker, store=get_store(), sessions=session_store)
    channel = EventChannel()

    logger.info(f"[generate] '{text[:80]}' preset={invoker.preset_name} history={len(history)}")
    task = asyncio.create_task(orchestrator.run(text, channel, history or None, session, slug))
    _runs.add(task)
    task.add_done_callback(_runs.discard)

    async def stream():
        async for frame in channel.encoded():
            yield frame
        # Hold the response open until the run has recorded its session
        await asyncio.shield(task)

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
