from __future__ import annotations
"""
Blendoracle — Model Output Parsing
===================================
Models return free text that is expected to embed one JSON object, often with
commentary or markdown fences around it. These helpers find the first
balanced object and report success or fallback as a value instead of raising,
so every stage can decide its own fallback.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


@dataclass
class ParseResult:
    """Tagged parse outcome: ``ok`` with ``value``, or fallback with ``reason``."""

    ok: bool
    value: Any = None
    reason: str = ""

    @classmethod
    def success(cls, value: Any) -> "ParseResult":
        return cls(ok=True, value=value)

    @classmethod
    def fallback(cls, reason: str) -> "ParseResult":
        return cls(ok=False, reason=reason)

    def then(self, fn: Callable[[Any], "ParseResult"]) -> "ParseResult":
        """Chain a validation step; fallbacks pass through untouched."""
        if not self.ok:
            return self
        return fn(self.value)


def strip_code_fences(text: str) -> str:
    """Remove a single surrounding markdown code fence, if present."""
    if not text:
        return ""
    m = _FENCE_RE.match(text)
    if m:
        return m.group(1).strip()
    return text.strip()


def find_balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring, ignoring braces in strings."""
    if not text:
        return None
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def parse_json_object(text: str | None) -> ParseResult:
    """Extract and decode the first JSON object embedded in ``text``."""
    if not text or not text.strip():
        return ParseResult.fallback("empty response")
    candidate = find_balanced_object(strip_code_fences(text))
    if candidate is None:
        return ParseResult.fallback("no JSON object found")
    try:
        value = json.loads(candidate)
    except json.JSONDecodeError as e:
        return ParseResult.fallback(f"invalid JSON: {e.msg}")
    if not isinstance(value, dict):
        return ParseResult.fallback("JSON value is not an object")
    return ParseResult.success(value)


def require_keys(*keys: str, types: dict | None = None) -> Callable[[dict], ParseResult]:
    """Validation step for ``ParseResult.then``: all ``keys`` present (and typed)."""
    types = types or {}

    def _check(value: dict) -> ParseResult:
        for key in keys:
            if key not in value or value[key] is None:
                return ParseResult.fallback(f"missing field: {key}")
            expected = types.get(key)
            if expected is not None and not isinstance(value[key], expected):
                return ParseResult.fallback(f"field {key} has wrong type")
        return ParseResult.success(value)

    return _check
