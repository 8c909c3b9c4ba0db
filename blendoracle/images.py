from __future__ import annotations
"""
Blendoracle — Image Resolution
===============================
Images are resolved on their own schedule, separately from block content.

Producer side: tag_images() gives every ``<img>`` in generated markup a
stable ``data-gen-image`` id and parks its source in ``data-src``;
ImageResolver then resolves each source (normalize, optionally verify, fall
back to a catalog image) in background tasks and announces the final URL
with an ``image-ready`` event. That event can arrive before, during or after
the ``block-content`` that carries the id.

Consumer side: ImageRetryQueue binds ``image-ready`` URLs to elements. Ids
that are not in the page yet are retried every interval and dropped (logged,
not raised) after the attempt ceiling.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from blendoracle.config import (
    HTTP_TIMEOUT_SECONDS, IMAGE_RETRY_INTERVAL_SECONDS, IMAGE_RETRY_MAX_ATTEMPTS,
)
from blendoracle.content.store import is_placeholder_image, normalize_image_url
from blendoracle.events import SSEEvent, image_ready

logger = logging.getLogger(__name__)

IMAGE_ID_ATTR = "data-gen-image"

_IMG_TAG_RE = re.compile(r"<img\b([^>]*?)(/?)>", re.IGNORECASE)
_SRC_ATTR_RE = re.compile(r"""\s+src\s*=\s*(["'])(.*?)\1""", re.IGNORECASE | re.DOTALL)
_LOCAL_ASSET_PREFIXES = ("/icons/", "data:")


@dataclass(frozen=True)
class ImagePlaceholder:
    image_id: str
    src: str


def tag_images(html: str, block_index: int) -> tuple[str, list[ImagePlaceholder]]:
    """Give each resolvable ``<img>`` a ``data-gen-image`` id; return the rewritten markup."""
    placeholders: list[ImagePlaceholder] = []

    def _rewrite(match: re.Match) -> str:
        attrs, self_close = match.group(1), match.group(2)
        if IMAGE_ID_ATTR in attrs:
            return match.group(0)
        src_match = _SRC_ATTR_RE.search(attrs)
        src = src_match.group(2).strip() if src_match else ""
        if not src or src.startswith(_LOCAL_ASSET_PREFIXES):
            return match.group(0)
        image_id = f"b{block_index}-img{len(placeholders)}"
        placeholders.append(ImagePlaceholder(image_id, src))
        rest = _SRC_ATTR_RE.sub("", attrs, count=1)
        safe_src = src.replace('"', "&quot;")
        return f'<img {IMAGE_ID_ATTR}="{image_id}" data-src="{safe_src}"{rest}{self_close}>'

    return _IMG_TAG_RE.sub(_rewrite, html), placeholders


# ---------------------------------------------------------------------------
# Producer: resolution tasks
# ---------------------------------------------------------------------------

class ImageResolver:
    """Resolves placeholders in background tasks and emits ``image-ready``.

    ``emit`` is an awaitable sink (normally ``EventChannel.try_emit``). With
    ``verify`` on, each candidate URL is checked with an HTTP HEAD and
    replaced by ``fallback_url`` when unreachable.
    """

    def __init__(self, emit: Callable[[SSEEvent], Awaitable], verify: bool = False,
                 http_client: httpx.AsyncClient | None = None):
        self._emit = emit
        self._verify = verify
        self._http = http_client
        self._tasks: set[asyncio.Task] = set()
        self.resolved: dict[str, str] = {}

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    def schedule(self, placeholders: list[ImagePlaceholder], fallback_url: str | None = None):
        for placeholder in placeholders:
            task = asyncio.create_task(self._resolve(placeholder, fallback_url))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _reachable(self, url: str) -> bool:
        try:
            if self._http is not None:
                response = await self._http.head(url, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
                    response = await client.head(url, follow_redirects=True)
            return response.status_code < 400
        except httpx.HTTPError as e:
            logger.info(f"[images] HEAD {url} failed: {e}")
            return False

    async def resolve_url(self, src: str, fallback_url: str | None = None) -> str | None:
        fallback = normalize_image_url(fallback_url)
        url = normalize_image_url(src)
        if url is None or is_placeholder_image(url):
            url = fallback
        if url and self._verify and not await self._reachable(url):
            url = fallback if fallback and fallback != url else None
        return url

    async def _resolve(self, placeholder: ImagePlaceholder, fallback_url: str | None):
        try:
            url = await self.resolve_url(placeholder.src, fallback_url)
        except Exception as e:
            logger.warning(f"[images] could not resolve {placeholder.image_id}: {e}")
            return
        if not url:
            logger.info(f"[images] no usable image for {placeholder.image_id}")
            return
        self.resolved[placeholder.image_id] = url
        await self._emit(image_ready(placeholder.image_id, url))

    async def drain(self, timeout: float) -> int:
        """Wait up to ``timeout`` for outstanding tasks, cancel the rest. Returns cancelled count."""
        tasks = [t for t in self._tasks if not t.done()]
        if not tasks:
            return 0
        done, not_done = await asyncio.wait(tasks, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            await asyncio.gather(*not_done, return_exceptions=True)
            logger.info(f"[images] cancelled {len(not_done)} slow image task(s)")
        return len(not_done)


# ---------------------------------------------------------------------------
# Consumer: bounded retry queue
# ---------------------------------------------------------------------------

@dataclass
class _PendingImage:
    url: str
    attempts: int = 0


class ImageRetryQueue:
    """Binds ``image-ready`` URLs to elements that may not exist yet.

    ``bind(image_id, url)`` returns True when the element was found and
    updated. Unbound ids are retried on every ``tick()`` and dropped after
    ``max_attempts`` failed retries.
    """

    def __init__(self, bind: Callable[[str, str], bool],
                 interval: float = IMAGE_RETRY_INTERVAL_SECONDS,
                 max_attempts: int = IMAGE_RETRY_MAX_ATTEMPTS):
        self._bind = bind
        self.interval = interval
        self.max_attempts = max_attempts
        self._pending: dict[str, _PendingImage] = {}
        self.dropped: list[str] = []

    @property
    def pending(self) -> dict[str, str]:
        return {image_id: p.url for image_id, p in self._pending.items()}

    def offer(self, image_id: str, url: str) -> bool:
        """Try to bind now; queue for retry if the element is missing."""
        if self._bind(image_id, url):
            self._pending.pop(image_id, None)
            return True
        self._pending[image_id] = _PendingImage(url)
        return False

    def tick(self) -> list[str]:
        """One retry pass. Returns the ids bound during this pass."""
        bound = []
        for image_id, entry in list(self._pending.items()):
            if self._bind(image_id, entry.url):
                bound.append(image_id)
                del self._pending[image_id]
                continue
            entry.attempts += 1
            if entry.attempts >= self.max_attempts:
                logger.warning(f"[images] dropping {image_id} after {entry.attempts} attempts")
                self.dropped.append(image_id)
                del self._pending[image_id]
        return bound

    async def run(self, stop: asyncio.Event):
        """Tick every ``interval`` until ``stop`` is set and nothing is pending."""
        while True:
            self.tick()
            if stop.is_set() and not self._pending:
                return
            await asyncio.sleep(self.interval)
