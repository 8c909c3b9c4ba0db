"""Fast preset: Sonnet reasoning with a smaller token budget."""

from blendoracle.presets.production import CONTENT, CLASSIFICATION, VALIDATION  # noqa: F401

DESCRIPTION = "Faster reasoning turnaround at slightly lower selection quality"

REASONING = {
    "provider": "anthropic",
    "model": "claude-sonnet-4-5-20250929",
    "max_tokens": 2048,
    "temperature": 0.7,
}
