"""
Preset Loader — resolves named model presets into role configurations.

Presets are plain Python modules registered in ``blendoracle.presets.PRESETS``.
The model invocation layer and the orchestrator receive their per-role
provider/model/temperature settings from here.
"""
from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field

from blendoracle.config import DEFAULT_PRESET
from blendoracle.presets import PRESETS

logger = logging.getLogger(__name__)

ROLES = ("reasoning", "content", "classification", "validation")
PROVIDERS = ("anthropic", "cerebras", "openai")


class PresetError(ValueError):
    """A registered preset module is missing or malformed."""


@dataclass(frozen=True)
class ModelConfig:
    """Provider/model/sampling settings for one pipeline role."""

    provider: str
    model: str
    max_tokens: int = 4096
    temperature: float = 0.7


@dataclass
class ModelPreset:
    name: str
    description: str = ""
    roles: dict[str, ModelConfig] = field(default_factory=dict)

    def config_for(self, role: str) -> ModelConfig:
        try:
            return self.roles[role]
        except KeyError:
            raise PresetError(f"Preset '{self.name}' has no configuration for role '{role}'")


# ---------------------------------------------------------------------------
# Module-level cache
# ---------------------------------------------------------------------------
_preset_cache: dict[str, ModelPreset] = {}


def _parse_role(name: str, role: str, raw) -> ModelConfig:
    if not isinstance(raw, dict):
        raise PresetError(f"Preset '{name}' role '{role}' must be a dict, got {type(raw).__name__}")
    provider = raw.get("provider")
    if provider not in PROVIDERS:
        raise PresetError(f"Preset '{name}' role '{role}' has unknown provider: {provider!r}")
    if not raw.get("model"):
        raise PresetError(f"Preset '{name}' role '{role}' has no model")
    return ModelConfig(
        provider=provider,
        model=str(raw["model"]),
        max_tokens=int(raw.get("max_tokens", 4096)),
        temperature=float(raw.get("temperature", 0.7)),
    )


def _load(name: str) -> ModelPreset:
    module_path = PRESETS[name]
    try:
        mod = importlib.import_module(module_path)
    except ModuleNotFoundError:
        raise PresetError(f"Preset module not found: {module_path}")

    roles = {}
    for role in ROLES:
        raw = getattr(mod, role.upper(), None)
        if raw is None:
            raise PresetError(f"Preset '{name}' ({module_path}) does not define {role.upper()}")
        roles[role] = _parse_role(name, role, raw)

    return ModelPreset(name=name, description=getattr(mod, "DESCRIPTION", ""), roles=roles)


def load_preset(name: str | None = None) -> ModelPreset:
    """Load a preset by name. Unknown names fall back to ``production``.

    Results are cached after first load.
    """
    name = name or DEFAULT_PRESET
    if name not in PRESETS:
        logger.warning(f"[preset] Unknown preset '{name}', falling back to production")
        name = "production"

    if name not in _preset_cache:
        _preset_cache[name] = _load(name)
    return _preset_cache[name]


def list_presets() -> list[str]:
    """Return all registered preset names."""
    return list(PRESETS.keys())


def clear_cache():
    """Clear the preset cache (for testing)."""
    _preset_cache.clear()
