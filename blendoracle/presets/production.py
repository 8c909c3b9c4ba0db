"""Production preset: Opus reasoning, Cerebras for everything latency-bound."""

DESCRIPTION = "Highest-quality block selection; fast content generation"

REASONING = {
    "provider": "anthropic",
    "model": "claude-opus-4-5-20251101",
    "max_tokens": 4096,
    "temperature": 0.7,
}

CONTENT = {
    "provider": "cerebras",
    "model": "gpt-oss-120b",
    "max_tokens": 4096,
    "temperature": 0.8,
}

CLASSIFICATION = {
    "provider": "cerebras",
    "model": "gpt-oss-120b",
    "max_tokens": 500,
    "temperature": 0.3,
}

VALIDATION = {
    "provider": "cerebras",
    "model": "gpt-oss-120b",
    "max_tokens": 300,
    "temperature": 0.2,
}
