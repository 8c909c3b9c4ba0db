from __future__ import annotations
"""
Blendoracle — Page HTML
========================
Turns assembled blocks into the document the authoring store expects: one
section ``<div>`` per block, with a ``section-metadata`` table when the
block's section style is not the default.
"""

import html
import re

from blendoracle.images import IMAGE_ID_ATTR

_IMG_TAG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_DATA_SRC_RE = re.compile(r'\sdata-src="([^"]*)"', re.IGNORECASE)
_SRC_RE = re.compile(r'\ssrc="', re.IGNORECASE)
_ID_ATTR_RE = re.compile(rf'\s{IMAGE_ID_ATTR}="[^"]*"', re.IGNORECASE)


def escape(text: str) -> str:
    return html.escape(text or "", quote=True)


def promote_image_sources(markup: str) -> str:
    """Give every ``<img>`` a real ``src``: keep a bound one, else use its ``data-src``.

    Streaming-only attributes are stripped from the persisted markup.
    """
    def _rewrite(match: re.Match) -> str:
        tag = match.group(0)
        data_src = _DATA_SRC_RE.search(tag)
        if data_src is None:
            return tag
        tag = _DATA_SRC_RE.sub("", tag, count=1)
        tag = _ID_ATTR_RE.sub("", tag, count=1)
        if not _SRC_RE.search(tag):
            tag = tag.replace("<img", f'<img src="{data_src.group(1)}"', 1)
        return tag

    return _IMG_TAG_RE.sub(_rewrite, markup)


def section_html(block_html: str, section_style: str | None = None) -> str:
    content = promote_image_sources(block_html)
    if section_style and section_style != "default":
        content += (
            '\n      <div class="section-metadata">\n'
            "        <div>\n"
            "          <div>style</div>\n"
            f"          <div>{escape(section_style)}</div>\n"
            "        </div>\n"
            "      </div>"
        )
    return f"    <div>\n{content}\n    </div>"


def build_page_html(title: str, description: str, blocks: list[dict]) -> str:
    """``blocks`` are ``{"html": ..., "sectionStyle": ...}`` dicts in page order."""
    sections = "\n".join(section_html(b.get("html", ""), b.get("sectionStyle")) for b in blocks)
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>{escape(title)}</title>
  <meta name="description" content="{escape(description)}">
</head>
<body>
  <header></header>
  <main>
{sections}
  </main>
  <footer></footer>
</body>
</html>"""


def default_title(query: str) -> str:
    text = " ".join(query.split())
    return text[:1].upper() + text[1:] if text else "Your Blender Guide"


def default_description(query: str) -> str:
    return f"Personalized blender recommendations and recipes for: {' '.join(query.split())}"[:160]
