from __future__ import annotations
"""
Blendoracle — Content Store
============================
Read-only, in-memory collections of products, recipes, use cases, features,
reviews, personas, accessories, product profiles, recipe associations and
FAQs. Loaded once per process from the JSON corpus in CONTENT_DIR; answers
point lookups and scored searches. Records are plain dicts in the corpus's
camelCase shape so they can be dropped into prompts unchanged.
"""

import json
import logging
import re
from pathlib import Path

from blendoracle.config import BRAND_ORIGIN, CONTENT_DIR, PLACEHOLDER_IMAGE_MARKERS

logger = logging.getLogger(__name__)

# file name → (top-level key, default)
_COLLECTION_FILES = {
    "products": ("products.json", "products", []),
    "recipes": ("recipes.json", "recipes", []),
    "recipe_categories": ("recipes.json", "categories", []),
    "accessories": ("accessories.json", "accessories", []),
    "use_cases": ("use-cases.json", "useCases", []),
    "features": ("features.json", "features", []),
    "reviews": ("reviews.json", "reviews", []),
    "personas": ("personas.json", "personas", []),
    "profiles": ("product-profiles.json", "profiles", {}),
    "associations": ("recipe-associations.json", None, {}),
    "faqs": ("faqs.json", "faqs", []),
}

_EMPTY_ASSOCIATIONS = {
    "categories": {},
    "featureToProducts": {},
    "difficultyToProducts": {},
    "servingSizeToProducts": {},
}


# ---------------------------------------------------------------------------
# Image helpers
# ---------------------------------------------------------------------------

def normalize_image_url(path: str | None) -> str | None:
    """Resolve catalog-relative image paths against the brand origin."""
    if not path or path == "no-image":
        return None
    if path.startswith("http://") or path.startswith("https://"):
        return path
    if path.startswith("//"):
        return "https:" + path
    if path.startswith("/"):
        return BRAND_ORIGIN.rstrip("/") + path
    return path


def is_placeholder_image(url: str | None) -> bool:
    if not url:
        return True
    lower = url.lower()
    return any(marker in lower for marker in PLACEHOLDER_IMAGE_MARKERS)


def primary_image(record: dict) -> str | None:
    """The record's usable primary image URL, or None for missing/placeholder images."""
    images = record.get("images") or {}
    url = normalize_image_url(images.get("primary") or images.get("remoteUrl"))
    if is_placeholder_image(url):
        return None
    return url


def has_real_image(record: dict) -> bool:
    return primary_image(record) is not None


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ContentStore:
    """Queryable view over the local corpus. Never mutated after construction."""

    def __init__(
        self,
        products: list[dict] | None = None,
        recipes: list[dict] | None = None,
        recipe_categories: list[str] | None = None,
        accessories: list[dict] | None = None,
        use_cases: list[dict] | None = None,
        features: list[dict] | None = None,
        reviews: list[dict] | None = None,
        personas: list[dict] | None = None,
        profiles: dict[str, dict] | None = None,
        associations: dict | None = None,
        faqs: list[dict] | None = None,
    ):
        self.products = list(products or [])
        self.recipes = list(recipes or [])
        self.recipe_categories = list(recipe_categories or [])
        self.accessories = list(accessories or [])
        self.use_cases = list(use_cases or [])
        self.features = list(features or [])
        self.reviews = list(reviews or [])
        self.personas = list(personas or [])
        self.profiles = dict(profiles or {})
        self.associations = {**_EMPTY_ASSOCIATIONS, **(associations or {})}
        self.faqs = list(faqs or [])

    @classmethod
    def from_directory(cls, directory: Path | str) -> "ContentStore":
        """Load every collection file found in ``directory``; missing files are empty."""
        directory = Path(directory)
        loaded: dict[str, object] = {}
        cache: dict[str, dict] = {}
        for attr, (filename, key, default) in _COLLECTION_FILES.items():
            path = directory / filename
            if filename not in cache:
                if path.exists():
                    cache[filename] = json.loads(path.read_text(encoding="utf-8"))
                else:
                    logger.warning(f"[content] {path} not found, {attr} will be empty")
                    cache[filename] = {}
            data = cache[filename]
            loaded[attr] = data if key is None else data.get(key, default)
        store = cls(**loaded)
        logger.info(
            f"[content] Loaded {len(store.products)} products, {len(store.recipes)} recipes, "
            f"{len(store.use_cases)} use cases, {len(store.reviews)} reviews, {len(store.faqs)} FAQs "
            f"from {directory}"
        )
        return store

    # ===================================================================
    # Products
    # ===================================================================

    def product_by_id(self, product_id: str) -> dict | None:
        return next((p for p in self.products if p.get("id") == product_id), None)

    def products_by_ids(self, ids: list[str]) -> list[dict]:
        """Products whose id is in ``ids``, in store order."""
        wanted = set(ids or [])
        return [p for p in self.products if p.get("id") in wanted]

    def products_by_series(self, series: str) -> list[dict]:
        return [p for p in self.products if p.get("series") == series]

    def products_by_price_range(self, low: float, high: float) -> list[dict]:
        return [p for p in self.products if low <= (p.get("price") or 0) <= high]

    def products_by_use_case(self, use_case: str) -> list[dict]:
        return [p for p in self.products if use_case in (p.get("bestFor") or [])]

    def search_products(self, query: str) -> list[dict]:
        """Substring match of the whole query against name/description/features/bestFor."""
        q = query.lower()
        out = []
        for p in self.products:
            if (q in p.get("name", "").lower()
                    or q in (p.get("description") or "").lower()
                    or any(q in f.lower() for f in p.get("features") or [])
                    or any(q in b.lower() for b in p.get("bestFor") or [])):
                out.append(p)
        return out

    def products_matching_model(self, model_token: str) -> list[dict]:
        token = model_token.lower()
        return [
            p for p in self.products
            if token in p.get("name", "").lower() or token in (p.get("id") or "").lower()
        ]

    # ===================================================================
    # Recipes
    # ===================================================================

    def recipe_by_id(self, recipe_id: str) -> dict | None:
        return next((r for r in self.recipes if r.get("id") == recipe_id), None)

    def recipes_by_category(self, category: str) -> list[dict]:
        return [r for r in self.recipes if r.get("category") == category]

    def recipes_by_difficulty(self, difficulty: str) -> list[dict]:
        return [r for r in self.recipes if r.get("difficulty") == difficulty]

    def recipes_for_product(self, product_id: str) -> list[dict]:
        return [r for r in self.recipes if product_id in (r.get("recommendedProducts") or [])]

    def search_recipes(self, query: str, max_results: int = 50) -> list[dict]:
        """Score recipes against ``query`` and return the best, highest first.

        Name: phrase 10, else 3 per word. Description: phrase 5, else 1 per
        word. Each ingredient: 8 when it and the query contain one another,
        else 4 per word. Only words longer than two characters count.
        """
        q = query.lower().strip()
        words = [w for w in q.split() if len(w) > 2]
        if not words:
            return []

        scored = []
        for index, recipe in enumerate(self.recipes):
            score = 0
            name = recipe.get("name", "").lower()
            if q in name:
                score += 10
            else:
                score += sum(3 for w in words if w in name)

            description = (recipe.get("description") or "").lower()
            if description:
                if q in description:
                    score += 5
                else:
                    score += sum(1 for w in words if w in description)

            for ingredient in recipe.get("ingredients") or []:
                item = (ingredient.get("item") or "").lower()
                if not item:
                    continue
                if item in q or q in item:
                    score += 8
                else:
                    score += sum(4 for w in words if w in item)

            if score > 0:
                scored.append((score, index, recipe))

        # Stable: ties keep store order
        scored.sort(key=lambda s: (-s[0], s[1]))
        return [recipe for _, _, recipe in scored[:max_results]]

    # ===================================================================
    # Use cases & features
    # ===================================================================

    def use_case_by_id(self, use_case_id: str) -> dict | None:
        return next((u for u in self.use_cases if u.get("id") == use_case_id), None)

    def feature_by_id(self, feature_id: str) -> dict | None:
        return next((f for f in self.features if f.get("id") == feature_id), None)

    def features_for_product(self, product_id: str) -> list[dict]:
        return [f for f in self.features if product_id in (f.get("availableIn") or [])]

    # ===================================================================
    # Accessories
    # ===================================================================

    def accessory_by_id(self, accessory_id: str) -> dict | None:
        return next((a for a in self.accessories if a.get("id") == accessory_id), None)

    def accessories_by_type(self, accessory_type: str) -> list[dict]:
        return [a for a in self.accessories if a.get("type") == accessory_type]

    def accessories_for_series(self, series: str) -> list[dict]:
        s = series.lower()
        return [
            a for a in self.accessories
            if any(s in c.lower() for c in (a.get("compatibility") or {}).get("series") or [])
        ]

    def containers_for_product(self, product_id: str) -> list[dict]:
        pid = product_id.lower()
        out = []
        for a in self.accessories_by_type("container"):
            compat = a.get("compatibility") or {}
            machines = compat.get("machines") or []
            if any(pid in m.lower() for m in machines) or compat.get("series"):
                out.append(a)
        return out

    def search_accessories(self, query: str) -> list[dict]:
        q = query.lower()
        return [
            a for a in self.accessories
            if q in a.get("name", "").lower()
            or q in (a.get("description") or "").lower()
            or q in (a.get("type") or "").lower()
        ]

    # ===================================================================
    # Reviews
    # ===================================================================

    def reviews_by_product(self, product_id: str) -> list[dict]:
        return [r for r in self.reviews if r.get("productId") == product_id]

    def reviews_by_use_case(self, use_case: str) -> list[dict]:
        return [r for r in self.reviews if r.get("useCase") == use_case]

    def average_rating(self, product_id: str) -> float:
        reviews = self.reviews_by_product(product_id)
        if not reviews:
            return 0.0
        return sum(r.get("rating") or 0 for r in reviews) / len(reviews)

    def curated_testimonials(self, limit: int = 4) -> list[dict]:
        """Two chef quotes, one customer story, one verified purchase review."""
        by_source = {}
        for r in self.reviews:
            by_source.setdefault(r.get("sourceType"), []).append(r)
        selected = (
            by_source.get("chef", [])[:2]
            + by_source.get("customer-story", [])[:1]
            + by_source.get("bazaarvoice", [])[:1]
        )
        return selected[:limit]

    # ===================================================================
    # Personas
    # ===================================================================

    def persona_by_id(self, persona_id: str) -> dict | None:
        return next((p for p in self.personas if p.get("personaId") == persona_id), None)

    def detect_persona(self, query: str) -> dict | None:
        """First persona with a trigger phrase contained in ``query``."""
        q = query.lower()
        for persona in self.personas:
            for trigger in persona.get("triggerPhrases") or []:
                if trigger.lower() in q:
                    return persona
        return None

    # ===================================================================
    # Product profiles
    # ===================================================================

    def product_profile(self, product_id: str) -> dict | None:
        return self.profiles.get(product_id)

    def products_for_use_case(self, use_case: str, min_score: float = 7) -> list[dict]:
        """Products scoring at least ``min_score`` for ``use_case``, best first."""
        ranked = sorted(
            (
                (profile.get("useCaseScores", {}).get(use_case) or 0, pid)
                for pid, profile in self.profiles.items()
            ),
            key=lambda item: -item[0],
        )
        by_id = {p.get("id"): p for p in self.products}
        return [by_id[pid] for score, pid in ranked if score >= min_score and pid in by_id]

    def products_by_price_tier(self, tier: str) -> list[dict]:
        ids = [pid for pid, profile in self.profiles.items() if profile.get("priceTier") == tier]
        return self.products_by_ids(ids)

    def products_by_household_fit(self, fit: str) -> list[dict]:
        ids = [pid for pid, profile in self.profiles.items() if fit in (profile.get("householdFit") or [])]
        return self.products_by_ids(ids)

    # ===================================================================
    # Recipe ↔ product associations
    # ===================================================================

    def recipe_category(self, category_id: str) -> dict | None:
        return self.associations["categories"].get(category_id)

    def detect_recipe_category(self, text: str) -> str | None:
        lower = (text or "").lower()
        for category_id, category in self.associations["categories"].items():
            if any(k.lower() in lower for k in category.get("keywords") or []):
                return category_id
        return None

    def products_for_recipe_category(self, category_id: str) -> list[dict]:
        category = self.recipe_category(category_id)
        if not category:
            return []
        return self.products_by_ids(category.get("recommendedProducts") or [])

    def products_with_feature(self, feature_id: str) -> list[dict]:
        return self.products_by_ids(self.associations["featureToProducts"].get(feature_id) or [])

    def recommended_products_for_recipe(self, recipe: dict) -> list[dict]:
        category_id = (self.detect_recipe_category(recipe.get("name", ""))
                       or self.detect_recipe_category(recipe.get("description") or ""))
        if category_id:
            return self.products_for_recipe_category(category_id)
        if recipe.get("recommendedProducts"):
            return self.products_by_ids(recipe["recommendedProducts"])
        return self.products_by_ids(["ascent-x5", "ascent-x4", "ascent-x3"])

    def recipes_for_recipe_category(self, category_id: str) -> list[dict]:
        category = self.recipe_category(category_id)
        if not category:
            return []
        keywords = [k.lower() for k in category.get("keywords") or []]
        return [
            r for r in self.recipes
            if any(k in r.get("name", "").lower() or k in (r.get("description") or "").lower()
                   for k in keywords)
        ]

    # ===================================================================
    # FAQs
    # ===================================================================

    def faqs_by_category(self, category: str) -> list[dict]:
        return [f for f in self.faqs if f.get("category") == category]

    def faqs_for_query(self, query: str) -> list[dict]:
        """FAQs scored against ``query``: keyword 2, question word 1, answer word 0.5."""
        q = query.lower()
        words = [w for w in q.split() if len(w) > 3]
        scored = []
        for index, faq in enumerate(self.faqs):
            score = 0.0
            for keyword in faq.get("keywords") or []:
                if keyword.lower() in q:
                    score += 2
            question = faq.get("question", "").lower()
            answer = faq.get("answer", "").lower()
            for w in words:
                if w in question:
                    score += 1
                if w in answer:
                    score += 0.5
            if score > 0:
                scored.append((score, index, faq))
        scored.sort(key=lambda s: (-s[0], s[1]))
        return [faq for _, _, faq in scored]

    # ===================================================================
    # Summary
    # ===================================================================

    def content_summary(self) -> dict:
        """Counts, price tiers (budget <500 ≤ mid <700 ≤ premium), series, categories."""
        def _tier(items: list[dict]) -> dict:
            prices = [p.get("price") or 0 for p in items]
            return {
                "min": min(prices) if prices else 0,
                "max": max(prices) if prices else 0,
                "count": len(prices),
            }

        priced = [p for p in self.products if p.get("price") is not None]
        series = []
        for p in self.products:
            if p.get("series") and p["series"] not in series:
                series.append(p["series"])

        return {
            "productCount": len(self.products),
            "recipeCount": len(self.recipes),
            "useCaseCount": len(self.use_cases),
            "featureCount": len(self.features),
            "priceTiers": {
                "budget": _tier([p for p in priced if p["price"] < 500]),
                "mid": _tier([p for p in priced if 500 <= p["price"] < 700]),
                "premium": _tier([p for p in priced if p["price"] >= 700]),
            },
            "series": series,
            "categories": list(self.recipe_categories),
        }


# ---------------------------------------------------------------------------
# Process-wide instance (loaded lazily, or set by main.py / tests)
# ---------------------------------------------------------------------------
_store: ContentStore | None = None


def set_store(store: ContentStore | None):
    global _store
    _store = store


def get_store() -> ContentStore:
    global _store
    if _store is None:
        _store = ContentStore.from_directory(CONTENT_DIR)
    return _store


def word_in(text: str, word: str) -> bool:
    """Whole-word, case-insensitive containment."""
    return re.search(rf"\b{re.escape(word)}\b", text or "", re.IGNORECASE) is not None
