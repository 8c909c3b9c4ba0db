"""All-Cerebras preset for cost optimization."""

from blendoracle.presets.production import CONTENT, CLASSIFICATION, VALIDATION  # noqa: F401

DESCRIPTION = "Every role on Cerebras; no Anthropic key required"

REASONING = {
    "provider": "cerebras",
    "model": "gpt-oss-120b",
    "max_tokens": 4096,
    "temperature": 0.7,
}
