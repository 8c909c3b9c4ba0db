from __future__ import annotations
"""
Blendoracle — Persist Route
"""
import logging

from fastapi import APIRouter

from blendoracle.models import PersistRequest, PublishResponse
from blendoracle.publish.pipeline import PublishPipeline, persist
from blendoracle.routes import generate

logger = logging.getLogger(__name__)

router = APIRouter()

# Swappable for tests; None builds a default pipeline per request
publish_pipeline: PublishPipeline | None = None


@router.post("/api/persist", response_model=PublishResponse, response_model_exclude_none=True)
async def persist_page(req: PersistRequest):
    """Persist an assembled page and publish it. Failures come back as ``success: false``."""
    try:
        result = await persist(req, publish_pipeline)
    except Exception as e:
        logger.exception(f"[persist] unexpected failure: {e}")
        return {"success": False, "error": str(e) or type(e).__name__}

    if result.success and req.sessionId:
        try:
            await generate.session_store.set_generated_path(req.sessionId, req.query, result.path)
        except Exception as e:
            logger.warning(f"[persist] could not record path for session {req.sessionId}: {e}")
    return result.to_dict()
