"""
Shared test fixtures: result counter, a scripted model invoker and the
sample content store. Zero LLM calls.
"""
from __future__ import annotations
import asyncio
import json
import sys
import tempfile
import traceback
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import blendoracle.database as database
from blendoracle.content.store import ContentStore
from blendoracle.model_factory import ModelInvocationError, ModelResponse
from blendoracle.preset_loader import ModelConfig

CONTENT_DIR = Path(__file__).parent.parent / "content"

PASS = 0
FAIL = 0


def check(name: str, condition: bool, detail: str = ""):
    global PASS, FAIL
    if condition:
        PASS += 1
        print(f"  ✅ {name}")
    else:
        FAIL += 1
        print(f"  ❌ {name} — {detail}")
    assert condition, f"{name} — {detail}"


def run_all(title: str, tests: list):
    """Script-mode runner: run every test, keep going after failures, exit non-zero on any."""
    print("=" * 60)
    print(title)
    print("=" * 60)
    failed = []
    for test in tests:
        try:
            test()
        except Exception:
            failed.append(test.__name__)
            traceback.print_exc()
    print("\n" + "=" * 60)
    print(f"RESULTS: {PASS}/{PASS + FAIL} checks passed, {len(failed)} test(s) failed")
    print("❌ SOME TESTS FAILED" if failed else "✅ ALL TESTS PASSED")
    print("=" * 60)
    sys.exit(1 if failed else 0)


_store: ContentStore | None = None


def sample_store() -> ContentStore:
    global _store
    if _store is None:
        _store = ContentStore.from_directory(CONTENT_DIR)
    return _store


def fresh_db() -> str:
    """Point the database layer at a new throwaway SQLite file and create the tables."""
    path = str(Path(tempfile.mkdtemp(prefix="blendoracle-test-")) / "blendoracle.db")
    database.set_db_path(path)
    asyncio.run(database.init_db())
    return path


class FakeInvoker:
    """Scripted stand-in for ModelInvoker.

    ``replies`` maps role → str | Exception | callable(messages) -> str |
    list of those (consumed in order; the last one repeats).
    """

    preset_name = "test"

    def __init__(self, replies: dict | None = None):
        self.replies = dict(replies or {})
        self.calls: list[tuple[str, list[dict]]] = []

    def config_for(self, role: str) -> ModelConfig:
        return ModelConfig(provider="fake", model=f"fake-{role}")

    async def call(self, role: str, messages: list[dict]) -> ModelResponse:
        self.calls.append((role, messages))
        reply = self.replies.get(role)
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else (reply[0] if reply else None)
        if callable(reply) and not isinstance(reply, Exception):
            reply = reply(messages)
        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            raise ModelInvocationError(f"no scripted reply for {role}")
        return ModelResponse(content=reply, model=f"fake-{role}")

    def calls_for(self, role: str) -> list[list[dict]]:
        return [messages for r, messages in self.calls if r == role]


def as_json(obj) -> str:
    return json.dumps(obj)


SMOOTHIE_INTENT = {
    "intentType": "use-case",
    "confidence": 0.9,
    "entities": {"products": [], "useCases": ["smoothies"], "features": [], "ingredients": []},
    "journeyStage": "exploring",
}

SMOOTHIE_REASONING = {
    "selectedBlocks": [
        {"type": "hero", "priority": 1, "rationale": "Open with quick kid-friendly smoothies",
         "contentGuidance": "Fast, fun smoothies kids love"},
        {"type": "reasoning-user", "priority": 2, "rationale": "should be dropped"},
        {"type": "recipe-cards", "priority": 3, "rationale": "Show quick recipes",
         "contentGuidance": "Five-minute recipes"},
        {"type": "product-cards", "priority": 4, "rationale": "Blenders with smoothie programs",
         "contentGuidance": "Family-sized options"},
    ],
    "reasoning": {
        "intentAnalysis": "A parent wants fast smoothies for children.",
        "userNeedsAssessment": "Speed, simple ingredients, easy cleanup.",
        "blockSelectionRationale": [],
        "alternativesConsidered": [],
        "finalDecision": "Lead with recipes, then blenders with programs.",
    },
    "userJourney": {
        "currentStage": "exploring",
        "nextBestAction": "Try a recipe",
        "suggestedFollowUps": ["Which blender is quietest?", "Smoothies with hidden veggies"],
    },
    "confidence": 0.85,
}


def content_reply(messages: list[dict]) -> str:
    """Echo a block of markup whose class matches the requested block type."""
    system = messages[0]["content"]
    block_type = system.split('"', 2)[1]
    return (f'<div class="{block_type}"><p>{block_type} content</p>'
            f'<img src="/media/recipes/strawberry-banana-smoothie.jpg" alt="smoothie"></div>')
