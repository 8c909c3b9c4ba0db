from __future__ import annotations
"""
Blendoracle — Retrieval Context Builder
========================================
Deterministic function of (query, intent) that selects the grounding bundle
for reasoning and content generation: a bounded, deduplicated set of
products, a diversity-capped set of recipes, matching use cases and the
detected persona.

Products, in priority order:
  1. exact model-number matches
  2. whole-query substring search
  3. use-case keyword search
  4. persona-recommended products (while under quota)
  5. first N products in store order
then real images ahead of placeholders, and feature-aware ranking for use
cases that need a specific program on top of that.

Recipes: ingredient-token search → full-query scored search → category and
keyword matches → use-case categories → word fallback → first M. Then
deduplicate by name, round-robin at most 2 per (sub)category, and prefer
ingredient matches and real images.
"""

import logging

from blendoracle.config import (
    DEFAULT_USE_CASE_COUNT, MAX_PRODUCTS, MAX_RECIPES, MAX_RECIPES_PER_CATEGORY,
)
from blendoracle.content.store import ContentStore, get_store, has_real_image, word_in
from blendoracle.content.vocabulary import (
    FEATURE_REQUIREMENTS, HOT_SOUP_PRODUCTS, USE_CASE_KEYWORDS,
    extract_ingredients, extract_product_models, extract_use_case_keywords,
)
from blendoracle.models import IntentClassification, RetrievalContext

logger = logging.getLogger(__name__)


def _dedupe(items: list[dict], key: str) -> list[dict]:
    seen = set()
    out = []
    for item in items:
        k = item.get(key)
        if k in seen:
            continue
        seen.add(k)
        out.append(item)
    return out


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

def _feature_score(product: dict, required: list[str]) -> int:
    score = 0
    pid = (product.get("id") or "").lower()
    name = product.get("name", "").lower()
    if "hot-soup-program" in required:
        if any(hs in pid or hs.replace("-", " ", 1) in name for hs in HOT_SOUP_PRODUCTS):
            score += 10
    features = [f.lower() for f in product.get("features") or []]
    for feature in required:
        phrase = feature.replace("-", " ", 1)
        if any(phrase in f for f in features):
            score += 5
    return score


def rank_by_required_features(products: list[dict], use_case_keywords: list[str]) -> list[dict]:
    """Move products carrying the features the primary use case needs to the front."""
    primary = next((kw for kw in use_case_keywords if kw in FEATURE_REQUIREMENTS), None)
    if primary is None:
        return products
    required = FEATURE_REQUIREMENTS[primary]
    # sorted() is stable, so equal scores keep retrieval order
    return sorted(products, key=lambda p: -_feature_score(p, required))


def select_products(store: ContentStore, query: str, keywords: list[str],
                    persona: dict | None, limit: int = MAX_PRODUCTS) -> list[dict]:
    products: list[dict] = []

    for model in extract_product_models(query):
        products.extend(store.products_matching_model(model))

    if not products:
        products = store.search_products(query)

    if not products and keywords:
        for keyword in keywords:
            for p in store.products:
                if (any(keyword in b.lower() for b in p.get("bestFor") or [])
                        or any(keyword in f.lower() for f in p.get("features") or [])
                        or keyword in (p.get("description") or "").lower()):
                    products.append(p)

    if persona and len(_dedupe(products, "id")) < limit:
        products.extend(store.products_by_ids(persona.get("recommendedProducts") or []))

    if not products:
        products = store.products[:limit]

    products = _dedupe(products, "id")[:limit]
    products.sort(key=lambda p: not has_real_image(p))
    return rank_by_required_features(products, keywords)


# ---------------------------------------------------------------------------
# Use cases
# ---------------------------------------------------------------------------

def select_use_cases(store: ContentStore, query: str, keywords: list[str]) -> list[dict]:
    q = query.lower()
    matched = [
        uc for uc in store.use_cases
        if uc.get("id", "") in q
        or uc.get("name", "").lower() in q
        or any(f.lower() in q for f in uc.get("relevantFeatures") or [])
        or uc.get("id") in keywords
    ]
    return matched or store.use_cases[:DEFAULT_USE_CASE_COUNT]


# ---------------------------------------------------------------------------
# Recipes
# ---------------------------------------------------------------------------

def diversify(recipes: list[dict], limit: int,
              per_category: int = MAX_RECIPES_PER_CATEGORY) -> list[dict]:
    """Round-robin across (sub)categories, taking at most ``per_category`` from each."""
    groups: dict[str, list[dict]] = {}
    for recipe in recipes:
        key = recipe.get("subcategory") or recipe.get("category") or "other"
        groups.setdefault(key, []).append(recipe)

    picked: list[dict] = []
    for round_index in range(per_category):
        for members in groups.values():
            if len(picked) >= limit:
                return picked
            if round_index < len(members):
                picked.append(members[round_index])
    return picked


def matches_ingredient(recipe: dict, ingredients: list[str]) -> bool:
    if not ingredients:
        return False
    for entry in recipe.get("ingredients") or []:
        item = entry.get("item") or ""
        if any(word_in(item, token) for token in ingredients):
            return True
    return False


def select_recipes(store: ContentStore, query: str, keywords: list[str],
                   ingredients: list[str], use_cases: list[dict],
                   limit: int = MAX_RECIPES) -> list[dict]:
    recipes: list[dict] = []
    names: set[str] = set()

    def _add(candidates: list[dict]):
        for r in candidates:
            if r.get("name") not in names:
                names.add(r.get("name"))
                recipes.append(r)

    if ingredients:
        _add(store.search_recipes(" ".join(ingredients), limit * 2))

    if len(recipes) < limit:
        _add(store.search_recipes(query, limit))

    if len(recipes) < limit:
        for keyword in keywords:
            _add([
                r for r in store.recipes
                if keyword in (r.get("category") or "").lower()
                or keyword in r.get("name", "").lower()
                or keyword in (r.get("description") or "").lower()
            ])

    if not recipes:
        for uc in use_cases:
            _add(store.recipes_by_category(uc.get("id")))

    if not recipes:
        words = [w for w in query.lower().split() if len(w) > 3]
        _add([
            r for r in store.recipes
            if any(w in r.get("name", "").lower() or w in (r.get("category") or "").lower()
                   for w in words)
        ])

    if not recipes:
        _add(store.recipes[:limit])

    diverse = diversify(recipes, limit) or recipes
    diverse.sort(key=lambda r: (not matches_ingredient(r, ingredients), not has_real_image(r)))
    return diverse[:limit]


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_retrieval_context(
    query: str,
    intent: IntentClassification | None = None,
    store: ContentStore | None = None,
    max_products: int = MAX_PRODUCTS,
    max_recipes: int = MAX_RECIPES,
) -> RetrievalContext:
    """Assemble the grounding bundle for one run."""
    store = store or get_store()

    keywords = extract_use_case_keywords(query)
    ingredients = extract_ingredients(query)
    if intent is not None:
        for uc in intent.entities.use_cases:
            uc = uc.lower()
            if uc in USE_CASE_KEYWORDS and uc not in keywords:
                keywords.append(uc)
        for ing in intent.entities.ingredients:
            ing = ing.lower()
            if ing not in ingredients:
                ingredients.append(ing)

    persona = store.detect_persona(query)
    products = select_products(store, query, keywords, persona, max_products)
    use_cases = select_use_cases(store, query, keywords)
    recipes = select_recipes(store, query, keywords, ingredients, use_cases, max_recipes)

    logger.info(
        f"[retrieval] products={len(products)} recipes={len(recipes)} use_cases={len(use_cases)} "
        f"keywords={keywords} ingredients={ingredients} "
        f"persona={persona.get('personaId') if persona else None}"
    )

    return RetrievalContext(
        products=products,
        recipes=recipes,
        use_cases=use_cases,
        persona=persona,
        content_summary=store.content_summary(),
    )
