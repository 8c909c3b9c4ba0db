#!/usr/bin/env python3
"""
Intent Classifier Tests
========================
Parse-or-fallback behaviour of the JSON extraction helpers and the
classifier's guarantee of a structurally valid intent.

Zero LLM calls — scripted invoker only.
"""
from __future__ import annotations
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from support import FakeInvoker, SMOOTHIE_INTENT, as_json, check, run_all

from blendoracle import intent_classifier
from blendoracle.intent_classifier import build_messages, classify_intent, parse_classification
from blendoracle.model_factory import ModelInvocationError
from blendoracle.models import INTENT_TYPES, IntentClassification
from blendoracle.parsing import find_balanced_object, parse_json_object, require_keys


def _is_default(intent: IntentClassification) -> bool:
    return (
        intent.intent_type == "discovery"
        and intent.confidence == 0.5
        and intent.journey_stage == "exploring"
        and intent.entities.products == []
        and intent.entities.use_cases == []
        and intent.entities.features == []
    )


# ── JSON extraction ─────────────────────────────────────────────────────

def test_json_extraction():
    print("\n── JSON Extraction ──")

    text = 'Sure! Here is the result: {"a": {"b": "}"}, "c": 1} and some trailing words {"d": 2}'
    check("First balanced object, braces in strings ignored",
          find_balanced_object(text) == '{"a": {"b": "}"}, "c": 1}')

    fenced = '```json\n{"intentType": "price"}\n```'
    result = parse_json_object(fenced)
    check("Code fences stripped", result.ok and result.value["intentType"] == "price")

    check("Empty text is a fallback", not parse_json_object("").ok)
    check("No object is a fallback", parse_json_object("no json here").reason == "no JSON object found")
    check("Invalid JSON is a fallback", not parse_json_object("{'single': 'quotes'}").ok)
    check("Unbalanced then balanced recovers", parse_json_object('{ broken {"ok": true}').ok)

    validator = require_keys("x", "y", types={"x": list})
    check("Missing key reported", validator({"x": []}).reason == "missing field: y")
    check("Wrong type reported", not validator({"x": "nope", "y": 1}).ok)
    check("Valid passes through", validator({"x": [], "y": 1}).ok)

    chained = parse_json_object('{"x": [1]}').then(require_keys("x", "y"))
    check("then() short-circuits to fallback", not chained.ok and "y" in chained.reason)


# ── Classification fallbacks ────────────────────────────────────────────

def test_classifier_model_error():
    print("\n── Classifier: model error ──")
    invoker = FakeInvoker({"classification": ModelInvocationError("timeout")})
    intent = asyncio.run(classify_intent("best blender for soup", invoker))
    check("Model error yields default intent", _is_default(intent), str(intent))


def test_classifier_non_json():
    print("\n── Classifier: non-JSON reply ──")
    invoker = FakeInvoker({"classification": "I think the user wants a blender."})
    intent = asyncio.run(classify_intent("best blender", invoker))
    check("Non-JSON reply yields default intent", _is_default(intent), str(intent))

    invoker = FakeInvoker({"classification": ""})
    intent = asyncio.run(classify_intent("best blender", invoker))
    check("Empty reply yields default intent", _is_default(intent))


def test_classifier_success():
    print("\n── Classifier: valid reply ──")
    reply = "Here you go:\n" + as_json(SMOOTHIE_INTENT)
    invoker = FakeInvoker({"classification": reply})
    intent = asyncio.run(classify_intent("quick banana smoothie for kids", invoker))
    check("Intent type parsed", intent.intent_type == "use-case")
    check("Use cases parsed", intent.entities.use_cases == ["smoothies"])
    check("Ingredients enriched from query", intent.entities.ingredients == ["banana"],
          str(intent.entities.ingredients))
    check("Confidence kept", intent.confidence == 0.9)


def test_classifier_coercion():
    print("\n── Classifier: coercion ──")
    result = parse_classification(as_json({
        "intentType": "shopping-spree",
        "confidence": 7,
        "entities": {"products": "A3500", "useCases": None},
        "journeyStage": "panicking",
    }))
    intent = result.value
    check("Parsed despite bad values", result.ok)
    check("Unknown intent coerced to discovery", intent.intent_type == "discovery")
    check("Confidence clamped", intent.confidence == 1.0)
    check("Unknown stage coerced to exploring", intent.journey_stage == "exploring")
    check("Non-list entities become empty lists", intent.entities.products == [] and intent.entities.use_cases == [])
    check("Intent types include special categories",
          all(t in INTENT_TYPES for t in ("support", "gift", "medical", "accessibility", "partnership")))


def test_classifier_absurd_confidence():
    print("\n── Classifier: out-of-range confidence ──")
    huge = '{"intentType": "use-case", "confidence": 1' + "0" * 400 + ', "entities": {}}'
    intent = asyncio.run(classify_intent("quick smoothie for kids", FakeInvoker({"classification": huge})))
    check("Overflowing confidence still yields an intent", intent.intent_type == "use-case")
    check("Overflowing confidence falls back to 0.5", intent.confidence == 0.5)

    intent = asyncio.run(classify_intent("soup", FakeInvoker({
        "classification": '{"intentType": "use-case", "confidence": NaN, "entities": {}}',
    })))
    check("NaN confidence falls back to 0.5", intent.confidence == 0.5)

    original = intent_classifier.parse_classification
    intent_classifier.parse_classification = lambda text, query="": 1 / 0
    try:
        intent = asyncio.run(classify_intent("soup", FakeInvoker({"classification": as_json(SMOOTHIE_INTENT)})))
    finally:
        intent_classifier.parse_classification = original
    check("Parse-stage exception yields the default intent", _is_default(intent))


def test_history_in_prompt():
    print("\n── Classifier: history ──")
    history = [{"query": f"q{i}", "intent": "discovery"} for i in range(8)]
    messages = build_messages("next question", history)
    user = messages[1]["content"]
    check("Only the last five history entries", "q2" not in user and "q3" in user and "q7" in user)
    check("Special categories checked first", messages[0]["content"].index("support") <
          messages[0]["content"].index("discovery, comparison"))


if __name__ == "__main__":
    run_all("INTENT CLASSIFIER TESTS", [
        test_json_extraction,
        test_classifier_model_error,
        test_classifier_non_json,
        test_classifier_success,
        test_classifier_coercion,
        test_classifier_absurd_confidence,
        test_history_in_prompt,
    ])
