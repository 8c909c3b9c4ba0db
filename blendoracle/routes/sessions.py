from __future__ import annotations
"""
Blendoracle — Session Routes
"""
import logging

from fastapi import APIRouter

from blendoracle.routes import generate

logger = logging.getLogger(__name__)

router = APIRouter()


# Routes: Session context
# ===========================================================================

@router.get("/api/sessions/{session_id}/context")
async def get_session_context(session_id: str):
    """The session's history as a ctx object, plus its encoded query-parameter form."""
    ctx = await generate.session_store.context(session_id)
    return {
        "sessionId": session_id,
        "ctx": ctx.to_ctx_param(),
        "encoded": ctx.encode(),
        "queries": ctx.queries,
    }


@router.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str):
    """Expire a session's stored history."""
    removed = await generate.session_store.expire(session_id)
    logger.info(f"[session] expired {session_id} ({removed} entries)")
    return {"status": "deleted", "removed": removed}
