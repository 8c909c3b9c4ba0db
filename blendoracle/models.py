from __future__ import annotations
"""
Blendoracle — Domain Types and Request Models
==============================================
Dataclasses for the values that flow through the generation pipeline, and
pydantic models for the HTTP request bodies. ``to_dict()`` always produces the
camelCase wire shape used by the event stream and the client.
"""

import math
from dataclasses import dataclass, field

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enumerations (kept as plain tuples, values are wire strings)
# ---------------------------------------------------------------------------

INTENT_TYPES = (
    "discovery", "comparison", "product-detail", "use-case", "specs", "reviews",
    "price", "recommendation", "support", "partnership", "gift", "medical",
    "accessibility",
)

JOURNEY_STAGES = ("exploring", "comparing", "deciding")


def clamp(value, low: float = 0.0, high: float = 1.0, default: float = 0.5) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if math.isnan(value):
        return default
    return max(low, min(high, value))


def _str_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if isinstance(v, (str, int, float)) and str(v).strip()]


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------

@dataclass
class IntentEntities:
    products: list[str] = field(default_factory=list)
    use_cases: list[str] = field(default_factory=list)
    features: list[str] = field(default_factory=list)
    ingredients: list[str] = field(default_factory=list)
    price_range: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "IntentEntities":
        data = data if isinstance(data, dict) else {}
        price = data.get("priceRange")
        return cls(
            products=_str_list(data.get("products")),
            use_cases=_str_list(data.get("useCases")),
            features=_str_list(data.get("features")),
            ingredients=_str_list(data.get("ingredients")),
            price_range=str(price) if price else None,
        )

    def to_dict(self) -> dict:
        out = {
            "products": list(self.products),
            "useCases": list(self.use_cases),
            "features": list(self.features),
            "ingredients": list(self.ingredients),
        }
        if self.price_range:
            out["priceRange"] = self.price_range
        return out


@dataclass
class IntentClassification:
    intent_type: str = "discovery"
    confidence: float = 0.5
    entities: IntentEntities = field(default_factory=IntentEntities)
    journey_stage: str = "exploring"

    @classmethod
    def default(cls) -> "IntentClassification":
        """The static fallback used whenever classification fails."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> "IntentClassification":
        """Build from a model-produced dict, coercing unknown values."""
        intent_type = data.get("intentType")
        if intent_type not in INTENT_TYPES:
            intent_type = "discovery"
        stage = data.get("journeyStage")
        if stage not in JOURNEY_STAGES:
            stage = "exploring"
        return cls(
            intent_type=intent_type,
            confidence=clamp(data.get("confidence")),
            entities=IntentEntities.from_dict(data.get("entities")),
            journey_stage=stage,
        )

    def to_dict(self) -> dict:
        return {
            "intentType": self.intent_type,
            "confidence": self.confidence,
            "entities": self.entities.to_dict(),
            "journeyStage": self.journey_stage,
        }


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

@dataclass
class RetrievalContext:
    products: list[dict] = field(default_factory=list)
    recipes: list[dict] = field(default_factory=list)
    use_cases: list[dict] = field(default_factory=list)
    persona: dict | None = None
    content_summary: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "relevantProducts": self.products,
            "relevantRecipes": self.recipes,
            "relevantUseCases": self.use_cases,
            "detectedPersona": self.persona,
            "contentSummary": self.content_summary,
        }


# ---------------------------------------------------------------------------
# Reasoning
# ---------------------------------------------------------------------------

@dataclass
class BlockSelection:
    type: str
    priority: int = 0
    rationale: str = ""
    content_guidance: str = ""
    variant: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "BlockSelection":
        try:
            priority = int(data.get("priority") or 0)
        except (TypeError, ValueError):
            priority = 0
        variant = data.get("variant")
        return cls(
            type=str(data.get("type", "")).strip(),
            priority=priority,
            rationale=str(data.get("rationale") or ""),
            content_guidance=str(data.get("contentGuidance") or ""),
            variant=str(variant) if variant else None,
        )

    def to_dict(self) -> dict:
        out = {
            "type": self.type,
            "priority": self.priority,
            "rationale": self.rationale,
            "contentGuidance": self.content_guidance,
        }
        if self.variant:
            out["variant"] = self.variant
        return out


@dataclass
class ReasoningTrace:
    intent_analysis: str = ""
    user_needs_assessment: str = ""
    block_selection_rationale: list[dict] = field(default_factory=list)
    alternatives_considered: list[str] = field(default_factory=list)
    final_decision: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ReasoningTrace":
        rationale = data.get("blockSelectionRationale")
        return cls(
            intent_analysis=str(data.get("intentAnalysis") or ""),
            user_needs_assessment=str(data.get("userNeedsAssessment") or ""),
            block_selection_rationale=[r for r in rationale if isinstance(r, dict)]
            if isinstance(rationale, list) else [],
            alternatives_considered=_str_list(data.get("alternativesConsidered")),
            final_decision=str(data.get("finalDecision") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "intentAnalysis": self.intent_analysis,
            "userNeedsAssessment": self.user_needs_assessment,
            "blockSelectionRationale": self.block_selection_rationale,
            "alternativesConsidered": self.alternatives_considered,
            "finalDecision": self.final_decision,
        }


@dataclass
class UserJourney:
    current_stage: str = "exploring"
    next_best_action: str = ""
    suggested_follow_ups: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "UserJourney":
        stage = data.get("currentStage")
        return cls(
            current_stage=stage if stage in JOURNEY_STAGES else "exploring",
            next_best_action=str(data.get("nextBestAction") or ""),
            suggested_follow_ups=_str_list(data.get("suggestedFollowUps")),
        )

    def to_dict(self) -> dict:
        return {
            "currentStage": self.current_stage,
            "nextBestAction": self.next_best_action,
            "suggestedFollowUps": self.suggested_follow_ups,
        }


@dataclass
class ReasoningResult:
    selected_blocks: list[BlockSelection]
    reasoning: ReasoningTrace
    user_journey: UserJourney
    confidence: float = 0.8
    fallback: bool = False

    def to_dict(self) -> dict:
        return {
            "selectedBlocks": [b.to_dict() for b in self.selected_blocks],
            "reasoning": self.reasoning.to_dict(),
            "userJourney": self.user_journey.to_dict(),
            "confidence": self.confidence,
        }


# ---------------------------------------------------------------------------
# Generated output
# ---------------------------------------------------------------------------

@dataclass
class GeneratedBlock:
    type: str
    html: str
    section_style: str | None = None
    failed: bool = False

    def to_dict(self) -> dict:
        out = {"type": self.type, "html": self.html}
        if self.section_style:
            out["sectionStyle"] = self.section_style
        return out


# ---------------------------------------------------------------------------
# Request / response bodies
# ---------------------------------------------------------------------------

class PersistBlock(BaseModel):
    html: str
    sectionStyle: str | None = None


class PersistRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    blocks: list[PersistBlock] = Field(..., min_length=1)
    intent: dict | None = None
    title: str | None = Field(default=None, max_length=300)
    description: str | None = Field(default=None, max_length=1000)
    sessionId: str | None = Field(default=None, max_length=200)


class PublishUrls(BaseModel):
    preview: str
    live: str


class PublishResponse(BaseModel):
    success: bool
    path: str | None = None
    urls: PublishUrls | None = None
    error: str | None = None
