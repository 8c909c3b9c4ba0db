from __future__ import annotations
"""
Blendoracle — Content Generator
================================
Produces the markup for one selected block.

Model-generated blocks get a prompt built from the block type's structural
template plus the slices of retrieval context the catalog says it needs.
The reply is unfenced and wrapped in the block's class div when the model
left it out. A failed call yields a minimal placeholder block; one bad block
never aborts the run.

``reasoning-user`` and ``follow-up`` are synthesized locally from the
reasoning result: no model call and no failure mode.
"""

import html
import logging
import re

from blendoracle.blocks import (
    CATALOG, CTX_FAQS, CTX_HERO_IMAGE, CTX_MAIN_PRODUCT, CTX_PRICE_TIERS, CTX_PRODUCTS,
    CTX_QUERY, CTX_RECIPES, CTX_RELATED_PRODUCTS, CTX_TESTIMONIALS, CTX_USE_CASES,
    BlockType,
)
from blendoracle.content.store import ContentStore, normalize_image_url, primary_image
from blendoracle.models import (
    BlockSelection, GeneratedBlock, ReasoningResult, RetrievalContext, UserJourney,
)
from blendoracle.parsing import strip_code_fences

logger = logging.getLogger(__name__)

FAILED_BLOCK_TEXT = "Content generation failed"
MAX_FAQ_RECORDS = 6
HOUSEHOLD_FITS = (("single", "one person"), ("family", "families"))


# ===========================================================================
# Context slices
# ===========================================================================

def product_context(products: list[dict]) -> str:
    if not products:
        return "No products available."
    parts = []
    for p in products:
        features = ", ".join((p.get("features") or [])[:3]) or "High performance blending"
        best_for = ", ".join(p.get("bestFor") or []) or "All blending tasks"
        tagline = p.get("tagline") or (p.get("description") or "")[:100] or "Premium blender"
        parts.append(
            f"- {p.get('name')} ({p.get('series', '')})\n"
            f"  Price: ${p.get('price')}\n"
            f"  Image: {primary_image(p) or 'no-image'}\n"
            f"  URL: {p.get('url') or '#'}\n"
            f"  Tagline: {tagline}\n"
            f"  Features: {features}\n"
            f"  Best for: {best_for}"
        )
    return "\n".join(parts)


def recipe_context(recipes: list[dict]) -> str:
    if not recipes:
        return "No recipes available."
    parts = []
    for r in recipes:
        parts.append(
            f"- {r.get('name')}\n"
            f"  Category: {r.get('category', '')}\n"
            f"  Time: {r.get('time') or r.get('prepTime') or '10 min'}\n"
            f"  Difficulty: {r.get('difficulty') or 'easy'}\n"
            f"  Image: {primary_image(r) or 'no-image'}\n"
            f"  URL: {r.get('url') or '#'}"
        )
    return "\n".join(parts)


def use_case_context(use_cases: list[dict]) -> str:
    if not use_cases:
        return "No use cases available."
    return "\n".join(
        f"- {uc.get('name')}\n  ID: {uc.get('id')}\n  Description: {uc.get('description', '')}\n"
        f"  Icon: {uc.get('icon', '')}"
        for uc in use_cases
    )


def testimonial_context(reviews: list[dict]) -> str:
    if not reviews:
        return "No testimonials available."
    parts = []
    for r in reviews:
        author = r.get("author", "Anonymous")
        if r.get("authorTitle"):
            author += f", {r['authorTitle']}"
        source_type = f" ({r['sourceType']})" if r.get("sourceType") else ""
        source_url = f"\n  Source URL: {r['sourceUrl']}" if r.get("sourceUrl") else ""
        parts.append(f'- "{r.get("content", "")}"\n  Author: {author}{source_type}{source_url}')
    return "\n".join(parts)


def faq_context(faqs: list[dict]) -> str:
    if not faqs:
        return "No stored FAQs matched; write FAQs from general product knowledge."
    return "\n".join(f"- Q: {f.get('question')}\n  A: {f.get('answer')}" for f in faqs)


def price_tier_context(summary: dict, store: ContentStore | None = None) -> str:
    tiers = (summary or {}).get("priceTiers") or {}
    lines = []
    for name in ("budget", "mid", "premium"):
        tier = tiers.get(name)
        if tier and tier.get("count"):
            line = f"- {name}: ${tier['min']}-${tier['max']} ({tier['count']} models)"
            models = [p.get("name") for p in store.products_by_price_tier(name)] if store is not None else []
            if models:
                line += f"\n  Profiled models: {', '.join(models)}"
            lines.append(line)
    if store is not None:
        for fit, label in HOUSEHOLD_FITS:
            models = [p.get("name") for p in store.products_by_household_fit(fit)]
            if models:
                lines.append(f"- Sized for {label}: {', '.join(models)}")
    return "\n".join(lines) or "No price tier data."


def main_product_details(product: dict, store: ContentStore) -> str:
    """Ratings, household fit and compatible accessories for the featured product."""
    pid = product.get("id") or ""
    lines = []
    reviews = store.reviews_by_product(pid)
    if reviews:
        lines.append(f"- Rating: {store.average_rating(pid):.1f}/5 from {len(reviews)} reviews")
    fit = (store.product_profile(pid) or {}).get("householdFit")
    if fit:
        lines.append(f"- Household fit: {', '.join(fit)}")
    containers = store.containers_for_product(pid)
    if containers:
        lines.append(f"- Compatible containers: {', '.join(a.get('name', '') for a in containers)}")
    if product.get("series"):
        extras = [a for a in store.accessories_for_series(product["series"]) if a.get("type") != "container"]
        if extras:
            lines.append(f"- Accessories: {', '.join(a.get('name', '') for a in extras)}")
    return "\n".join(lines)


def build_data_context(block: BlockSelection, entry: BlockType, context: RetrievalContext,
                       query: str, store: ContentStore | None = None) -> str:
    """Concatenate the context sections ``entry`` asks for."""
    sections = []
    for kind in entry.context:
        if kind == CTX_QUERY:
            sections.append(f'## User\'s Original Question: "{query}"')
        elif kind == CTX_PRODUCTS:
            sections.append(
                "## Available Products (USE THESE EXACT IMAGE URLs):\n" + product_context(context.products)
            )
        elif kind == CTX_RELATED_PRODUCTS:
            sections.append("## Related Products:\n" + product_context(context.products[:3]))
        elif kind == CTX_MAIN_PRODUCT and context.products:
            main = context.products[0]
            details = main_product_details(main, store) if store is not None else ""
            sections.append(
                "## Product to Feature:\n" + product_context([main])
                + (f"\n\n## Ratings and Compatibility:\n{details}" if details else "")
                + "\n\nGenerate realistic specifications based on this product type."
            )
        elif kind == CTX_HERO_IMAGE:
            image = primary_image(context.products[0]) if context.products else None
            if image:
                sections.append(f"## Hero Image (USE THIS EXACT URL): {image}")
        elif kind == CTX_RECIPES:
            section = "## Available Recipes (USE THESE EXACT IMAGE URLs):\n" + recipe_context(context.recipes)
            if store is not None and context.recipes:
                first = context.recipes[0]
                picks = store.recommended_products_for_recipe(first)
                if picks:
                    section += (f"\n\nBlenders recommended for {first.get('name')}: "
                                + ", ".join(p.get("name", "") for p in picks))
            sections.append(section)
        elif kind == CTX_USE_CASES:
            sections.append("## Use Cases to Highlight:\n" + use_case_context(context.use_cases))
        elif kind == CTX_FAQS and store is not None:
            faqs = store.faqs_for_query(f"{query} {block.content_guidance}")[:MAX_FAQ_RECORDS]
            if block.type == "support-triage":
                faqs += [f for f in store.faqs_by_category("support") if f not in faqs]
            sections.append("## Relevant FAQs:\n" + faq_context(faqs))
        elif kind == CTX_TESTIMONIALS and store is not None:
            sections.append(
                "## Real Testimonials (USE THESE EXACT QUOTES - do not invent):\n"
                + testimonial_context(store.curated_testimonials())
            )
        elif kind == CTX_PRICE_TIERS:
            sections.append("## Price Tiers:\n" + price_tier_context(context.content_summary, store))
    return "\n\n".join(sections)


def build_messages(block: BlockSelection, entry: BlockType, context: RetrievalContext,
                   query: str, store: ContentStore | None = None) -> list[dict]:
    data_context = build_data_context(block, entry, context, query, store)
    system = f"""Generate HTML content for a "{block.type}" block.
Content guidance: {block.content_guidance}

IMPORTANT RULES:
1. Use ONLY the image URLs provided in the context below - NEVER make up image URLs
2. If no image URL is provided, omit the image element entirely
3. Output valid HTML following the EXACT structure shown in the template
4. Do NOT include <html>, <head>, or <body> tags - just the block content
5. Populate the template with real data from the context provided
6. Calls to action must be value-driven and specific; never generic "Learn More"
{entry.template}

{data_context}"""
    user = (
        f"Generate the {block.type} block content.\n"
        f"Variant: {block.variant or 'default'}\n"
        f"Rationale: {block.rationale}"
    )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


# ===========================================================================
# Post-processing
# ===========================================================================

_WRAPPER_RE = re.compile(r"""<div\s+class=(["'])([^"']*)\1""", re.IGNORECASE)


def wrap_block_html(block_type: str, content: str, variant: str | None = None) -> str:
    """Wrap ``content`` in the block's class div unless it already starts with one."""
    markup = strip_code_fences(content)
    opening = _WRAPPER_RE.match(markup)
    if opening and block_type in opening.group(2).split():
        return markup
    variant_class = f" {variant}" if variant else ""
    return f'<div class="{block_type}{variant_class}">\n{markup}\n</div>'


def failed_block(block_type: str) -> GeneratedBlock:
    return GeneratedBlock(
        type=block_type,
        html=f'<div class="{block_type}">{FAILED_BLOCK_TEXT}</div>',
        section_style=CATALOG.section_style(block_type),
        failed=True,
    )


# ===========================================================================
# Synthesized blocks
# ===========================================================================

def reasoning_user_block(result: ReasoningResult) -> GeneratedBlock:
    """The user-facing "Here's What I Understand" block, straight from the trace."""
    trace = result.reasoning
    steps = [
        ("understanding", trace.intent_analysis),
        ("assessment", trace.user_needs_assessment),
        ("decision", trace.final_decision),
    ]
    rows = "".join(
        f"<div><div>{stage}</div><div><p>{html.escape(text)}</p></div></div>"
        for stage, text in steps
    )
    return GeneratedBlock(
        type="reasoning-user",
        html=f'<div class="reasoning-user"><div><div>Here\'s What I Understand</div></div>{rows}</div>',
        section_style=CATALOG.section_style("reasoning-user"),
    )


def follow_up_block(journey: UserJourney) -> GeneratedBlock:
    chips = "".join(f"<div><div>{html.escape(s)}</div></div>" for s in journey.suggested_follow_ups)
    return GeneratedBlock(
        type="follow-up",
        html=f'<div class="follow-up">{chips}</div>',
        section_style=CATALOG.section_style("follow-up"),
    )


# ===========================================================================
# Entry point
# ===========================================================================

async def generate_block(block: BlockSelection, result: ReasoningResult, context: RetrievalContext,
                         query: str, invoker, store: ContentStore | None = None) -> GeneratedBlock:
    """Generate one block. Never raises."""
    if block.type == "reasoning-user":
        return reasoning_user_block(result)
    if block.type == "follow-up":
        return follow_up_block(result.user_journey)

    entry = CATALOG.get(block.type)
    if entry is None:
        logger.error(f"[content] no catalog entry for {block.type}")
        return failed_block(block.type)

    try:
        messages = build_messages(block, entry, context, query, store)
        response = await invoker.call("content", messages)
    except Exception as e:
        logger.error(f"[content] {block.type} generation failed: {e}")
        return failed_block(block.type)

    if not response.content or not response.content.strip():
        logger.warning(f"[content] {block.type} came back empty")
        return failed_block(block.type)

    return GeneratedBlock(
        type=block.type,
        html=wrap_block_html(block.type, response.content, block.variant),
        section_style=entry.section_style,
    )


def fallback_image_url(context: RetrievalContext) -> str | None:
    """Catalog image used when a generated image source is unusable."""
    for record in context.products + context.recipes:
        image = primary_image(record)
        if image:
            return normalize_image_url(image)
    return None
