from __future__ import annotations
"""
Blendoracle — Intent Classifier
================================
One role=classification call that turns the query (plus a short slice of
session history) into an IntentClassification. Never raises: a model error,
timeout or unparseable reply yields the static default intent.
"""

import logging

from blendoracle.config import CLASSIFIER_HISTORY
from blendoracle.content.vocabulary import extract_ingredients
from blendoracle.models import INTENT_TYPES, IntentClassification
from blendoracle.parsing import ParseResult, parse_json_object

logger = logging.getLogger(__name__)

CLASSIFICATION_PROMPT = f"""Classify the user's intent for a Vitamix blender recommendation system.

Check the SPECIAL categories first, in this order, because they change the
tone of everything downstream:
- support: problems, broken or leaking machines, warranty, returns, frustration
- gift: buying for someone else (birthday, wedding, holiday, "for my ...")
- medical: health conditions such as dysphagia, stroke recovery, diabetes
- accessibility: arthritis, limited grip or mobility, weight of the container
- partnership: business, restaurant, commercial or B2B use

Only if none apply, choose among the generic categories:
discovery, comparison, product-detail, use-case, specs, reviews, price, recommendation.

Output JSON only:
{{
  "intentType": "{'|'.join(INTENT_TYPES)}",
  "confidence": 0.0-1.0,
  "entities": {{
    "products": ["product names mentioned"],
    "useCases": ["smoothies", "soups", etc.],
    "features": ["self-cleaning", "preset programs", etc.],
    "ingredients": ["banana", "kale", etc.],
    "priceRange": "budget|mid|premium|null"
  }},
  "journeyStage": "exploring|comparing|deciding"
}}"""


def build_messages(query: str, history: list[dict] | None = None) -> list[dict]:
    context = ""
    recent = (history or [])[-CLASSIFIER_HISTORY:]
    if recent:
        lines = "\n".join(f'- "{h.get("query", "")}" ({h.get("intent") or "unknown"})' for h in recent)
        context = f"\n\nPrevious queries in this session:\n{lines}"
    return [
        {"role": "system", "content": CLASSIFICATION_PROMPT},
        {"role": "user", "content": f'Query: "{query}"{context}'},
    ]


def parse_classification(text: str | None, query: str = "") -> ParseResult:
    """Parse a classifier reply into an IntentClassification (or a fallback reason)."""
    parsed = parse_json_object(text)
    if not parsed.ok:
        return parsed
    intent = IntentClassification.from_dict(parsed.value)
    if not intent.entities.ingredients and query:
        intent.entities.ingredients = extract_ingredients(query)
    return ParseResult.success(intent)


async def classify_intent(query: str, invoker, history: list[dict] | None = None) -> IntentClassification:
    """Classify ``query``. Always returns a structurally valid intent."""
    try:
        response = await invoker.call("classification", build_messages(query, history))
        result = parse_classification(response.content, query)
    except Exception as e:
        logger.error(f"[classifier] classification failed, using default intent: {e}")
        return IntentClassification.default()

    if not result.ok:
        logger.warning(f"[classifier] {result.reason}, using default intent")
        return IntentClassification.default()

    intent = result.value
    logger.info(
        f"[classifier] intent={intent.intent_type} confidence={intent.confidence:.2f} "
        f"stage={intent.journey_stage} use_cases={intent.entities.use_cases}"
    )
    return intent
