from __future__ import annotations
"""
Blendoracle — Authoring Store and Admin Clients
================================================
DAClient writes page source and media into the document authoring store.
AEMAdminClient asks the admin API to preview, publish and purge a path,
and polls the preview host until a page is served.

Every authenticated call goes through ``authorized_request`` (one token
refresh on 401). Non-2xx answers raise PublishError; the pipeline decides
which steps are fatal.
"""

import asyncio
import hashlib
import logging
import re
from urllib.parse import urlparse

import httpx

from blendoracle.config import (
    AEM_ADMIN_BASE_URL, DA_ORG, DA_REF, DA_REPO, DA_SOURCE_BASE_URL,
    PREVIEW_POLL_ATTEMPTS, PREVIEW_POLL_INTERVAL_SECONDS,
)
from blendoracle.publish.token_service import PublishError, TokenService, authorized_request

logger = logging.getLogger(__name__)


def _check(response: httpx.Response, action: str):
    if response.status_code >= 400:
        raise PublishError(f"{action} failed: {response.status_code} - {response.text[:200]}")


# ---------------------------------------------------------------------------
# Media naming
# ---------------------------------------------------------------------------

def content_hash(data: bytes) -> str:
    """40-char content hash in the ``1<hex>`` shape the store uses for media names."""
    return "1" + hashlib.sha256(data).hexdigest()[:39]


def image_extension(url: str, content_type: str | None = None) -> str:
    if content_type:
        match = re.search(r"image/(\w+)", content_type)
        if match:
            ext = match.group(1).lower()
            return "jpg" if ext == "jpeg" else ext
    path = urlparse(url).path
    ext = path.rsplit(".", 1)[-1].lower() if "." in path.rsplit("/", 1)[-1] else ""
    return ext or "jpg"


def media_filename(data: bytes, url: str, content_type: str | None = None) -> str:
    return f"media_{content_hash(data)}.{image_extension(url, content_type)}"


# ---------------------------------------------------------------------------
# Authoring store
# ---------------------------------------------------------------------------

class DAClient:
    def __init__(self, tokens: TokenService, http_client: httpx.AsyncClient,
                 org: str = DA_ORG, repo: str = DA_REPO, base_url: str = DA_SOURCE_BASE_URL):
        self.tokens = tokens
        self.http = http_client
        self.org = org
        self.repo = repo
        self.base_url = base_url.rstrip("/")

    def source_url(self, path: str) -> str:
        return f"{self.base_url}/source/{self.org}/{self.repo}{path}"

    async def create_page(self, path: str, html: str):
        url = self.source_url(f"{path}.html")
        logger.info(f"[publish] creating page {url} ({len(html)} chars)")
        response = await authorized_request(
            self.tokens, self.http, "PUT", url,
            files={"data": ("index.html", html.encode("utf-8"), "text/html")},
        )
        _check(response, "Create page")

    async def upload_media(self, filename: str, data: bytes, content_type: str, folder: str) -> str:
        """Upload bytes next to the page; returns the relative URL to reference them by."""
        full_path = re.sub(r"/+", "/", f"{folder}/{filename}")
        response = await authorized_request(
            self.tokens, self.http, "PUT", self.source_url(full_path),
            files={"data": (filename, data, content_type)},
        )
        _check(response, "Upload media")
        logger.info(f"[publish] uploaded media {full_path} ({len(data)} bytes)")
        return f"./{filename}"


# ---------------------------------------------------------------------------
# Admin API
# ---------------------------------------------------------------------------

class AEMAdminClient:
    def __init__(self, tokens: TokenService, http_client: httpx.AsyncClient,
                 org: str = DA_ORG, site: str = DA_REPO, ref: str = DA_REF,
                 base_url: str = AEM_ADMIN_BASE_URL):
        self.tokens = tokens
        self.http = http_client
        self.org = org
        self.site = site
        self.ref = ref
        self.base_url = base_url.rstrip("/")

    def preview_url(self, path: str) -> str:
        return f"https://{self.ref}--{self.site}--{self.org}.aem.page{path}"

    def live_url(self, path: str) -> str:
        return f"https://{self.ref}--{self.site}--{self.org}.aem.live{path}"

    def _endpoint(self, action: str, path: str) -> str:
        return f"{self.base_url}/{action}/{self.org}/{self.site}/{self.ref}{path}"

    async def preview(self, path: str) -> str:
        response = await authorized_request(self.tokens, self.http, "POST", self._endpoint("preview", path))
        _check(response, "Preview")
        return self.preview_url(path)

    async def publish(self, path: str) -> str:
        response = await authorized_request(self.tokens, self.http, "POST", self._endpoint("live", path))
        _check(response, "Publish")
        return self.live_url(path)

    async def purge_cache(self, path: str):
        response = await authorized_request(self.tokens, self.http, "POST", self._endpoint("cache", path))
        _check(response, "Cache purge")

    async def wait_for_preview(self, path: str, attempts: int = PREVIEW_POLL_ATTEMPTS,
                               interval: float = PREVIEW_POLL_INTERVAL_SECONDS) -> bool:
        """Poll the preview host with HEAD until it serves ``path``."""
        url = self.preview_url(path)
        for attempt in range(attempts):
            try:
                response = await self.http.head(url)
                if response.status_code < 400:
                    return True
            except httpx.HTTPError as e:
                logger.debug(f"[publish] preview poll {attempt + 1} failed: {e}")
            await asyncio.sleep(interval)
        return False
