from __future__ import annotations
"""
Blendoracle — Reasoning Engine
===============================
One role=reasoning call that turns (query, intent, retrieval context,
session history) into an ordered block plan, a user-facing reasoning trace
and a journey plan.

A reply that lacks a JSON object or any of ``selectedBlocks`` (list),
``reasoning`` (object) or ``userJourney`` (object) falls back to a static
block list keyed by intent type. Model-derived and fallback plans both pass
through normalize_blocks():

  1. rename known aliases to canonical type names
  2. drop ``reasoning``/``reasoning-user`` (synthesized from the trace instead)
  3. drop types the block catalog does not know
  4. keep exactly one ``follow-up``, last
  5. renumber priorities 1..N in final order
"""

import logging

from blendoracle.blocks import CATALOG, RESERVED_TYPES, block_table
from blendoracle.config import REASONING_HISTORY
from blendoracle.models import (
    BlockSelection, IntentClassification, ReasoningResult, ReasoningTrace,
    RetrievalContext, UserJourney, clamp,
)
from blendoracle.parsing import ParseResult, parse_json_object, require_keys

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.6

# ---------------------------------------------------------------------------
# Static fallback plans
# ---------------------------------------------------------------------------

FALLBACK_BLOCKS = {
    "discovery": ["hero", "use-case-cards", "product-cards", "follow-up"],
    "comparison": ["hero", "comparison-table", "product-cards", "follow-up"],
    "product-detail": ["product-hero", "specs-table", "recipe-cards", "cta", "follow-up"],
    "use-case": ["hero", "feature-highlights", "recipe-cards", "product-recommendation", "follow-up"],
    "specs": ["hero", "specs-table", "comparison-table", "follow-up"],
    "reviews": ["hero", "testimonials", "product-recommendation", "follow-up"],
    "price": ["hero", "budget-breakdown", "product-cards", "follow-up"],
    "recommendation": ["product-recommendation", "follow-up"],
    "support": ["support-triage", "faq", "follow-up"],
    "partnership": ["hero", "feature-highlights", "testimonials", "follow-up"],
    "gift": ["hero", "product-recommendation", "product-cards", "follow-up"],
    "medical": ["empathy-hero", "accessibility-specs", "product-recommendation", "follow-up"],
    "accessibility": ["empathy-hero", "accessibility-specs", "product-recommendation", "follow-up"],
}

FALLBACK_FOLLOW_UPS = [
    "Tell me more about Vitamix blenders",
    "What can I make?",
    "Compare models",
]

# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

REASONING_SYSTEM_PROMPT = f"""You are the reasoning engine for a Vitamix Blender Recommender.

Your role is to:
1. Deeply analyze user intent and needs
2. Plan an optimal user journey
3. Select which content blocks best serve the user
4. Explain your thinking transparently

Your reasoning will be shown directly to users. Write like you're talking to them:
- Use "you" and "your"
- Each reasoning field must be under 50 words
- Warm, friendly and conversational; no jargon, no bullet points, no numbered lists
- Example tone: "You're looking for a blender that can handle your morning smoothies. I've got you covered!"

## Available Blocks

{block_table()}

## Block Selection Guidelines

1. NEVER include 'reasoning' or 'reasoning-user' blocks - they are generated separately
2. ALWAYS include a 'follow-up' block at the end
3. Match blocks to user journey stage:
   - Exploring: hero, use-case-cards, feature-highlights, follow-up
   - Comparing: hero, comparison-table, product-cards, follow-up
   - Deciding: product-hero, product-recommendation, recipe-cards, cta, follow-up

## SPECIAL HANDLING RULES (apply these first)

### 1. Support / frustrated customer
Keywords: "problem", "broken", "frustrated", "warranty", "return", "issue", "not working", "third container"
Lead with support-triage. NEVER show product recommendations. Sequence: support-triage, faq, follow-up

### 2. Simple yes/no or quick questions
Keywords: "can vitamix", "will it", "does it", "is it worth", "should I", "can I"
Lead with quick-answer. Sequence: quick-answer, follow-up (add product-recommendation if details help)

### 3. Medical / accessibility
Keywords: "arthritis", "disability", "dysphagia", "stroke", "mobility", "grip", "heavy", "aging"
Sequence: empathy-hero, accessibility-specs, product-recommendation, follow-up

### 4. Budget-conscious
Keywords: "budget", "afford", "cheap", "worth it", "broke", "student", "expensive"
Be honest about alternatives. Sequence: hero, budget-breakdown, product-cards, follow-up

### 5. Gifts
Keywords: "gift", "for my", "birthday", "wedding", "christmas", "present"
Focus on the recipient; offer safe-bet picks and mention gift cards.
Sequence: hero, product-recommendation, product-cards, follow-up

### 6. Commercial / B2B
Keywords: "restaurant", "business", "commercial", "bulk", "b2b", "professional kitchen"
Focus on durability, warranty, volume. Sequence: hero, specs-table, comparison-table, follow-up

### 7. Sustainability
Keywords: "eco", "sustainable", "environment", "green", "waste", "landfill", "plastic", "carbon"
Longevity and repairability as eco-benefits. Sequence: hero, sustainability-info, product-recommendation, follow-up

### 8. Noise-sensitive
Keywords: "noise", "quiet", "loud", "apartment", "roommate", "neighbors", "dB", "decibel"
Be honest: blenders are loud. Sequence: hero, noise-context, product-cards, follow-up

### 9. Allergy / cross-contamination
Keywords: "allergy", "allergen", "cross-contamination", "peanut", "gluten", "celiac", "anaphylaxis"
Emphasize a dedicated-container strategy. Sequence: hero, allergen-safety, product-recommendation, follow-up

### 10. Smart home / connected
Keywords: "app", "wifi", "connected", "smart", "alexa", "voice", "bluetooth", "smart home"
Be transparent about limitations. Sequence: hero, smart-features, comparison-table, follow-up

### 11. Engineering / deep specs
Keywords: "wattage", "rpm", "motor", "specs", "specifications", "technical", "engineer"
Raw data, no marketing. Sequence: hero, engineering-specs, comparison-table, follow-up

## Output Format

Respond with valid JSON only:
{{
  "selectedBlocks": [
    {{
      "type": "hero",
      "variant": "discovery",
      "priority": 1,
      "rationale": "User is exploring options...",
      "contentGuidance": "Focus on empowering headline about possibilities..."
    }}
  ],
  "reasoning": {{
    "intentAnalysis": "You're looking for... (UNDER 50 WORDS)",
    "userNeedsAssessment": "What matters most to you is... (UNDER 50 WORDS)",
    "blockSelectionRationale": [
      {{ "blockType": "hero", "reason": "...", "contentFocus": "..." }}
    ],
    "alternativesConsidered": ["..."],
    "finalDecision": "Here's my plan for you... (UNDER 50 WORDS)"
  }},
  "userJourney": {{
    "currentStage": "exploring",
    "nextBestAction": "explore_use_cases",
    "suggestedFollowUps": ["What can I make with a Vitamix?", "Compare top models"]
  }},
  "confidence": 0.92
}}"""


def _product_line(p: dict) -> str:
    tagline = p.get("tagline") or (p.get("description") or "")[:100]
    return f"- {p.get('name')} ({p.get('series', '')}): ${p.get('price', '?')} - {tagline}"


def build_reasoning_prompt(query: str, intent: IntentClassification, context: RetrievalContext,
                           history: list[dict] | None = None) -> str:
    products = "\n".join(_product_line(p) for p in context.products[:5])
    recipes = "\n".join(
        f"- {r.get('name')}: {r.get('category', '')} - {r.get('time') or r.get('prepTime') or 'quick'} prep"
        for r in context.recipes[:3]
    )
    use_cases = "\n".join(f"- {uc.get('name')}: {uc.get('description', '')}" for uc in context.use_cases)

    if context.persona:
        persona = (
            f"Detected Persona: {context.persona.get('name')}\n"
            f"  - Goals: {', '.join(context.persona.get('primaryGoals') or [])}\n"
            f"  - Concerns: {', '.join(context.persona.get('keyBarriers') or [])}"
        )
    else:
        persona = "No specific persona detected"

    recent = (history or [])[-REASONING_HISTORY:]
    session = "\n".join(f'  - "{h.get("query", "")}" ({h.get("intent") or "unknown"})' for h in recent)

    entities = intent.entities
    summary = context.content_summary or {}
    return f"""## User Query
"{query}"

## Intent Classification
- Type: {intent.intent_type}
- Confidence: {intent.confidence}
- Journey Stage: {intent.journey_stage}
- Detected Products: {', '.join(entities.products) or 'None'}
- Use Cases: {', '.join(entities.use_cases) or 'None'}
- Features: {', '.join(entities.features) or 'None'}
- Ingredients: {', '.join(entities.ingredients) or 'None'}

## User Profile Analysis
{persona}

## Available Products ({summary.get('productCount', len(context.products))} total)
{products or 'No products matched'}

## Relevant Use Cases
{use_cases or 'No specific use cases matched'}

## Available Recipes ({summary.get('recipeCount', len(context.recipes))} total)
{recipes or 'No recipes matched'}

## Session History
{session or 'New session'}

## Your Task
Analyze this query deeply and select the optimal blocks to render.
Include your reasoning so users understand how you approached their question.
Consider the user's journey stage and what would move them closer to a confident decision."""


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_blocks(blocks: list[BlockSelection]) -> list[BlockSelection]:
    """Apply the block-list invariants. Never returns an empty list."""
    kept: list[BlockSelection] = []
    follow_up: BlockSelection | None = None

    for block in blocks:
        block_type = CATALOG.canonical(block.type)
        if block_type in RESERVED_TYPES:
            continue
        if not CATALOG.is_known(block_type):
            logger.warning(f"[reasoning] dropping unknown block type '{block.type}'")
            continue
        block.type = block_type
        if block_type == "follow-up":
            if follow_up is None:
                follow_up = block
            continue
        kept.append(block)

    if follow_up is None:
        follow_up = BlockSelection(
            type="follow-up",
            rationale="Enable continued exploration",
            content_guidance="Provide contextual follow-up suggestions",
        )
    kept.append(follow_up)

    for index, block in enumerate(kept, start=1):
        block.priority = index
    return kept


# ---------------------------------------------------------------------------
# Parsing and fallback
# ---------------------------------------------------------------------------

def parse_reasoning(text: str | None) -> ParseResult:
    """Parse a reasoning reply into a (not yet normalized) ReasoningResult."""
    parsed = parse_json_object(text).then(require_keys(
        "selectedBlocks", "reasoning", "userJourney",
        types={"selectedBlocks": list, "reasoning": dict, "userJourney": dict},
    ))
    if not parsed.ok:
        return parsed

    data = parsed.value
    blocks = [BlockSelection.from_dict(b) for b in data["selectedBlocks"] if isinstance(b, dict)]
    return ParseResult.success(ReasoningResult(
        selected_blocks=blocks,
        reasoning=ReasoningTrace.from_dict(data["reasoning"]),
        user_journey=UserJourney.from_dict(data["userJourney"]),
        confidence=clamp(data.get("confidence"), default=DEFAULT_CONFIDENCE),
    ))


def fallback_result(intent: IntentClassification) -> ReasoningResult:
    """Static plan keyed by intent type, with a generic trace."""
    types = FALLBACK_BLOCKS.get(intent.intent_type, FALLBACK_BLOCKS["discovery"])
    blocks = [
        BlockSelection(
            type=t,
            priority=i,
            rationale=f"Default block for {intent.intent_type} intent",
            content_guidance=f"Generate appropriate {t} content",
        )
        for i, t in enumerate(types, start=1)
    ]
    return ReasoningResult(
        selected_blocks=blocks,
        reasoning=ReasoningTrace(
            intent_analysis=f"User intent classified as {intent.intent_type}",
            user_needs_assessment="Using default assessment based on intent classification",
            block_selection_rationale=[
                {"blockType": t, "reason": "Default selection for intent type",
                 "contentFocus": "Standard content approach"}
                for t in types
            ],
            alternatives_considered=["Fallback mode - no alternatives analyzed"],
            final_decision="Using fallback layout due to reasoning engine error",
        ),
        user_journey=UserJourney(
            current_stage=intent.journey_stage,
            next_best_action="continue_exploration",
            suggested_follow_ups=list(FALLBACK_FOLLOW_UPS),
        ),
        confidence=FALLBACK_CONFIDENCE,
        fallback=True,
    )


async def select_blocks(query: str, intent: IntentClassification, context: RetrievalContext,
                        invoker, history: list[dict] | None = None) -> ReasoningResult:
    """Run the reasoning stage. Always returns a normalized plan."""
    messages = [
        {"role": "system", "content": REASONING_SYSTEM_PROMPT},
        {"role": "user", "content": build_reasoning_prompt(query, intent, context, history)},
    ]

    try:
        response = await invoker.call("reasoning", messages)
        parsed = parse_reasoning(response.content)
        if parsed.ok:
            result = parsed.value
        else:
            logger.warning(f"[reasoning] {parsed.reason}, using fallback plan for {intent.intent_type}")
            result = fallback_result(intent)
    except Exception as e:
        logger.error(f"[reasoning] model call failed, using fallback plan: {e}")
        result = fallback_result(intent)

    result.selected_blocks = normalize_blocks(result.selected_blocks)
    if not result.user_journey.suggested_follow_ups:
        result.user_journey.suggested_follow_ups = list(FALLBACK_FOLLOW_UPS)

    logger.info(
        f"[reasoning] blocks={[b.type for b in result.selected_blocks]} "
        f"confidence={result.confidence:.2f} fallback={result.fallback}"
    )
    return result


def format_reasoning_steps(trace: ReasoningTrace) -> list[dict]:
    """The three user-facing reasoning steps, in display order."""
    return [
        {"stage": "understanding", "title": "Understanding Your Question", "content": trace.intent_analysis},
        {"stage": "assessment", "title": "Assessing Your Needs", "content": trace.user_needs_assessment},
        {"stage": "decision", "title": "My Recommendation", "content": trace.final_decision},
    ]

