from __future__ import annotations
"""
Blendoracle — Page Routing
===========================
Where a persisted page lives: ``/{category}/{slug}``.

The category comes from the query wording and the classified intent. The
slug is built from entities when there are enough of them, otherwise from
the query's content words, and always ends in a short hash so two pages
from the same query never collide.
"""

import re
import time

from blendoracle.models import IntentClassification

CATEGORIES = ("smoothies", "recipes", "products", "compare", "tips", "discover")

SMOOTHIE_KEYWORDS = (
    "smoothie", "smoothies", "shake", "shakes", "blend", "blended", "juice", "juices",
    "frozen drink", "protein shake", "green drink",
)

RECIPE_KEYWORDS = (
    "recipe", "recipes", "cook", "cooking", "make", "prepare", "soup", "sauce", "dip",
    "dressing", "batter", "dough", "puree", "nut butter",
)

INTENT_CATEGORIES = {
    "product-detail": "products",
    "specs": "products",
    "price": "products",
    "reviews": "products",
    "comparison": "compare",
    "support": "tips",
}

STOP_WORDS = frozenset("""
a an the and or but in on at to for of with by from is it as be this that are was were been
being have has had do does did will would could should may might can what how why when where
which who my your me i we you make get want need like best good great some any please help
""".split())

SLUG_MAX_LENGTH = 50
HASH_LENGTH = 6


def classify_category(intent: IntentClassification, query: str) -> str:
    lowered = query.lower()
    if any(k in lowered for k in SMOOTHIE_KEYWORDS):
        return "smoothies"
    if intent.intent_type == "use-case":
        return "recipes" if any(k in lowered for k in RECIPE_KEYWORDS) else "discover"
    return INTENT_CATEGORIES.get(intent.intent_type, "discover")


def category_from_path(path: str) -> str | None:
    for category in CATEGORIES:
        if path.startswith(f"/{category}/"):
            return category
    return None


def extract_keywords(query: str) -> list[str]:
    cleaned = re.sub(r"[^a-z0-9\s]", "", query.lower())
    return [w for w in cleaned.split() if len(w) > 2 and w not in STOP_WORDS][:6]


def _base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(digits[r])
    return "".join(reversed(out))


def short_hash(text: str) -> str:
    """Java-style 32-bit string hash rendered in base36."""
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 1 << 32
    return _base36(abs(h))


def _slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9-]", "", text.lower().replace(" ", "-"))
    return re.sub(r"-+", "-", slug).strip("-")


def semantic_slug(query: str, intent: IntentClassification, salt: str | None = None) -> str:
    entities = intent.entities
    concepts = [c for c in (entities.products[:2] + entities.use_cases[:1] + entities.features[:1]) if c]
    if len(concepts) >= 2:
        base = _slugify("-".join(concepts))[:SLUG_MAX_LENGTH]
    else:
        base = "-".join(extract_keywords(query)[:4])[:SLUG_MAX_LENGTH]
    base = base.strip("-") or "page"

    salt = salt if salt is not None else str(int(time.time() * 1000))
    suffix = short_hash(query + salt).rjust(HASH_LENGTH, "0")[:HASH_LENGTH]
    return f"{base}-{suffix}"


def categorized_path(category: str, slug: str) -> str:
    return f"/{category}/{slug}"


def page_path(query: str, intent: IntentClassification, salt: str | None = None) -> str:
    return categorized_path(classify_category(intent, query), semantic_slug(query, intent, salt))
