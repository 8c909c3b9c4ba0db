from __future__ import annotations
"""
Blendoracle — FastAPI Backend
==============================
Main application entry point. Defines app, lifespan, CORS, and includes
route modules. Route handlers live in blendoracle/routes/.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blendoracle.config import CONTENT_DIR, DATABASE_PATH, DEBUG, DEFAULT_PRESET
from blendoracle.content.store import ContentStore, set_store
from blendoracle.preset_loader import list_presets, load_preset

logging.basicConfig(
    level=logging.DEBUG if DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("blendoracle")

# Database setup
import blendoracle.database as database

database.set_db_path(DATABASE_PATH)


# ---------------------------------------------------------------------------
# Lifespan (startup / shutdown)
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await database.init_db()
    print(f"[startup] Database initialized at: {DATABASE_PATH}")

    store = ContentStore.from_directory(CONTENT_DIR)
    set_store(store)
    summary = store.content_summary()
    print(f"[startup] Content: {summary['productCount']} products, {summary['recipeCount']} recipes "
          f"from {CONTENT_DIR}")

    preset = load_preset(DEFAULT_PRESET)
    print(f"[startup] Default preset: {preset.name} (reasoning: {preset.config_for('reasoning').model})")

    from blendoracle.routes.generate import session_store
    try:
        removed = await session_store.purge_expired()
        print(f"[startup] Purged {removed} expired session entries")
    except Exception as e:
        print(f"[startup] WARNING: session purge failed: {e}")

    yield
    # Shutdown (nothing to clean up)


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Blendoracle",
    description="Generates personalized blender pages from free-text queries, streamed as SSE",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Health check and presets (inline, too small for their own module)
# ---------------------------------------------------------------------------

@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "blendoracle", "preset": DEFAULT_PRESET}


@app.get("/api/presets")
async def presets():
    """Available presets and the model each role resolves to."""
    result = {}
    for name in list_presets():
        preset = load_preset(name)
        result[name] = {
            "description": preset.description,
            "roles": {role: cfg.model for role, cfg in preset.roles.items()},
        }
    return {"default": DEFAULT_PRESET, "presets": result}


@app.get("/api/usage")
async def usage():
    """Token usage and estimated cost per role and model."""
    return {"usage": await database.get_usage_summary()}


# ---------------------------------------------------------------------------
# Include route modules
# ---------------------------------------------------------------------------

from blendoracle.routes.generate import router as generate_router
from blendoracle.routes.persist import router as persist_router
from blendoracle.routes.sessions import router as sessions_router

app.include_router(generate_router, tags=["Generate"])
app.include_router(persist_router, tags=["Persist"])
app.include_router(sessions_router, tags=["Sessions"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=DEBUG,
    )
