from __future__ import annotations
"""
Blendoracle — Persist and Publish
==================================
  0. mirror external images into the store (optional, per-image failures keep the URL)
  1. create page source             (fatal)
  2. request preview                (fatal)
  3. poll preview host              (logged, continues)
  4. request publish                (fatal)
  5. purge cache                    (logged, continues)

Each authenticated step refreshes the token once on 401. The caller always
gets a PublishResult, never an exception.
"""

import logging
import re
from dataclasses import dataclass, field

import httpx

from blendoracle.config import (
    BRAND_ORIGIN, DA_ORG, DA_REF, DA_REPO, HTTP_TIMEOUT_SECONDS, MIRROR_EXTERNAL_IMAGES,
    PREVIEW_POLL_ATTEMPTS, PREVIEW_POLL_INTERVAL_SECONDS,
)
from blendoracle.models import IntentClassification, PersistRequest
from blendoracle.publish.category import page_path
from blendoracle.publish.da_client import AEMAdminClient, DAClient, media_filename
from blendoracle.publish.page_html import build_page_html, default_description, default_title
from blendoracle.publish.token_service import PublishError, TokenService, get_token_service

logger = logging.getLogger(__name__)

_EXTERNAL_SRC_RE = re.compile(r'(<img\b[^>]*?\ssrc=")(https?://[^"]+)(")', re.IGNORECASE)

DOWNLOAD_HEADERS = {
    "Accept": "image/webp,image/apng,image/*,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": f"{BRAND_ORIGIN}/",
}


@dataclass
class PublishResult:
    success: bool
    path: str | None = None
    urls: dict = field(default_factory=dict)
    error: str | None = None
    preview_ready: bool = False

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.error or "Publish failed"}
        return {"success": True, "path": self.path, "urls": self.urls}


class PublishPipeline:
    def __init__(
        self,
        tokens: TokenService | None = None,
        http_client: httpx.AsyncClient | None = None,
        mirror_images: bool = MIRROR_EXTERNAL_IMAGES,
        poll_attempts: int = PREVIEW_POLL_ATTEMPTS,
        poll_interval: float = PREVIEW_POLL_INTERVAL_SECONDS,
        **store_options,
    ):
        self.tokens = tokens or get_token_service()
        self._http = http_client
        self.mirror = mirror_images
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self.store_options = store_options  # org / repo / ref overrides

    def _clients(self, http: httpx.AsyncClient) -> tuple[DAClient, AEMAdminClient]:
        opts = self.store_options
        da = DAClient(self.tokens, http, org=opts.get("org") or DA_ORG, repo=opts.get("repo") or DA_REPO)
        admin = AEMAdminClient(self.tokens, http, org=da.org, site=da.repo, ref=opts.get("ref") or DA_REF)
        return da, admin

    async def mirror_external_images(self, html: str, path: str, da: DAClient,
                                     http: httpx.AsyncClient) -> str:
        folder = path.rsplit("/", 1)[0] + "/"
        replacements: dict[str, str] = {}
        for match in _EXTERNAL_SRC_RE.finditer(html):
            url = match.group(2)
            if url in replacements:
                continue
            try:
                response = await http.get(url, headers=DOWNLOAD_HEADERS, follow_redirects=True)
                if response.status_code >= 400:
                    raise PublishError(f"download returned {response.status_code}")
                content_type = response.headers.get("content-type", "image/jpeg")
                filename = media_filename(response.content, url, content_type)
                replacements[url] = await da.upload_media(filename, response.content, content_type, folder)
            except (httpx.HTTPError, PublishError) as e:
                logger.warning(f"[publish] keeping external image {url}: {e}")
        if not replacements:
            return html
        return _EXTERNAL_SRC_RE.sub(
            lambda m: f"{m.group(1)}{replacements.get(m.group(2), m.group(2))}{m.group(3)}", html,
        )

    async def run(self, path: str, html: str) -> PublishResult:
        if self._http is not None:
            return await self._run(path, html, self._http)
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as http:
            return await self._run(path, html, http)

    async def _run(self, path: str, html: str, http: httpx.AsyncClient) -> PublishResult:
        da, admin = self._clients(http)
        try:
            if self.mirror:
                html = await self.mirror_external_images(html, path, da, http)

            await da.create_page(path, html)
            preview_url = await admin.preview(path)

            ready = await admin.wait_for_preview(path, self.poll_attempts, self.poll_interval)
            if not ready:
                logger.warning(f"[publish] preview for {path} not ready in time, publishing anyway")

            live_url = await admin.publish(path)

            try:
                await admin.purge_cache(path)
            except (PublishError, httpx.HTTPError) as e:
                logger.warning(f"[publish] cache purge for {path} failed: {e}")

        except (PublishError, httpx.HTTPError) as e:
            logger.error(f"[publish] {path} failed: {e}")
            return PublishResult(success=False, path=path, error=str(e))

        logger.info(f"[publish] {path} live at {live_url}")
        return PublishResult(success=True, path=path, urls={"preview": preview_url, "live": live_url},
                             preview_ready=ready)


async def persist(request: PersistRequest, pipeline: PublishPipeline | None = None,
                  salt: str | None = None) -> PublishResult:
    """Route, render and publish one assembled page."""
    intent = IntentClassification.from_dict(request.intent) if request.intent else IntentClassification.default()
    path = page_path(request.query, intent, salt)
    html = build_page_html(
        request.title or default_title(request.query),
        request.description or default_description(request.query),
        [b.model_dump() for b in request.blocks],
    )
    logger.info(f"[publish] persisting {len(request.blocks)} blocks for '{request.query[:60]}' at {path}")
    return await (pipeline or PublishPipeline()).run(path, html)
