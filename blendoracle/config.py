from __future__ import annotations
"""
Blendoracle — Configuration
============================
Shared settings for every pipeline stage. Values come from the process
environment (``.env`` at the repo root is loaded first) with defaults that
work for local development.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).parent.parent  # blendoracle/config.py → repo root
load_dotenv(PROJECT_ROOT / ".env")

CONTENT_DIR = Path(os.getenv("CONTENT_DIR", str(PROJECT_ROOT / "content")))
DATABASE_PATH = os.getenv("DATABASE_PATH", str(PROJECT_ROOT / "data" / "blendoracle.db"))


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Environment / API Keys
# ---------------------------------------------------------------------------
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
CEREBRAS_API_KEY = os.getenv("CEREBRAS_API_KEY") or os.getenv("CEREBRAS_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

CEREBRAS_BASE_URL = os.getenv("CEREBRAS_BASE_URL", "https://api.cerebras.ai/v1")

# ---------------------------------------------------------------------------
# Model invocation
# ---------------------------------------------------------------------------
DEFAULT_PRESET = os.getenv("MODEL_PRESET", "production")
MODEL_TIMEOUT_SECONDS = float(os.getenv("MODEL_TIMEOUT_SECONDS", "60"))

# ---------------------------------------------------------------------------
# Retrieval limits
# ---------------------------------------------------------------------------
MAX_PRODUCTS = 5
MAX_RECIPES = 6
MAX_RECIPES_PER_CATEGORY = 2
DEFAULT_USE_CASE_COUNT = 3

# Brand origin used to resolve relative catalog image/product paths
BRAND_ORIGIN = os.getenv("BRAND_ORIGIN", "https://www.vitamix.com")
PLACEHOLDER_IMAGE_MARKERS = ("vitamix-logo", "noimageimage")

# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------
ESTIMATED_BLOCKS = 5
GENERATION_CONCURRENCY = max(1, int(os.getenv("GENERATION_CONCURRENCY", "1")))
IMAGE_WAIT_SECONDS = float(os.getenv("IMAGE_WAIT_SECONDS", "2.0"))
VERIFY_IMAGES = _env_bool("VERIFY_IMAGES", False)  # HEAD-check image URLs before image-ready

# Consumer-side image reconciliation (documented defaults: 100ms × 20 ≈ 2s)
IMAGE_RETRY_INTERVAL_SECONDS = 0.1
IMAGE_RETRY_MAX_ATTEMPTS = 20

# ---------------------------------------------------------------------------
# Session context
# ---------------------------------------------------------------------------
SESSION_MAX_QUERIES = 10
SESSION_TTL_HOURS = float(os.getenv("SESSION_TTL_HOURS", "24"))
CLASSIFIER_HISTORY = 5   # entries shown to the classifier
REASONING_HISTORY = 3    # entries shown to the reasoning engine

# ---------------------------------------------------------------------------
# Persistence / publish
# ---------------------------------------------------------------------------
DA_ORG = os.getenv("DA_ORG", "")
DA_REPO = os.getenv("DA_REPO", "")
DA_REF = os.getenv("DA_REF", "main")
DA_CLIENT_ID = os.getenv("DA_CLIENT_ID", "")
DA_CLIENT_SECRET = os.getenv("DA_CLIENT_SECRET", "")
DA_SERVICE_TOKEN = os.getenv("DA_SERVICE_TOKEN", "")
DA_TOKEN = os.getenv("DA_TOKEN", "")

DA_SOURCE_BASE_URL = os.getenv("DA_SOURCE_BASE_URL", "https://admin.da.live")
AEM_ADMIN_BASE_URL = os.getenv("AEM_ADMIN_BASE_URL", "https://admin.hlx.page")
IMS_TOKEN_ENDPOINT = os.getenv("IMS_TOKEN_ENDPOINT", "https://ims-na1.adobelogin.com/ims/token/v3")

HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
TOKEN_MAX_AGE_HOURS = float(os.getenv("TOKEN_MAX_AGE_HOURS", "23"))  # tokens live 24h
PREVIEW_POLL_ATTEMPTS = int(os.getenv("PREVIEW_POLL_ATTEMPTS", "10"))
PREVIEW_POLL_INTERVAL_SECONDS = float(os.getenv("PREVIEW_POLL_INTERVAL_SECONDS", "1.0"))
MIRROR_EXTERNAL_IMAGES = _env_bool("MIRROR_EXTERNAL_IMAGES", False)

# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------
DEBUG = _env_bool("DEBUG", False)
