"""
Model preset registry.

Each preset is a module defining REASONING, CONTENT, CLASSIFICATION and
VALIDATION dicts (provider, model, max_tokens, temperature). Register new
presets here; preset_loader imports them by module path.
"""

PRESETS = {
    "production": "blendoracle.presets.production",
    "fast": "blendoracle.presets.fast",
    "all-cerebras": "blendoracle.presets.all_cerebras",
}
