from __future__ import annotations
"""
Blendoracle — Model Invocation Layer
=====================================
Calls a named model for a named pipeline role (classification, reasoning,
content, validation). The active preset maps each role to a provider, model,
token limit and temperature; callers only ever see text in, text out.

Providers:
  anthropic  — Messages API via the official SDK
  cerebras   — OpenAI-compatible chat completions (openai SDK, custom base_url)
  openai     — chat completions via the openai SDK

Every call carries its own timeout; a timeout, a provider error or missing
credentials all surface as ModelInvocationError so stage guards can apply
their fallbacks.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

import anthropic
import openai

from blendoracle import database
from blendoracle.config import (
    ANTHROPIC_API_KEY, CEREBRAS_API_KEY, CEREBRAS_BASE_URL, OPENAI_API_KEY,
    MODEL_TIMEOUT_SECONDS,
)
from blendoracle.preset_loader import ModelConfig, ModelPreset, load_preset

logger = logging.getLogger(__name__)


class ModelInvocationError(RuntimeError):
    """A model call failed: provider error, timeout or missing credentials."""


@dataclass
class ModelResponse:
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    duration_ms: int = 0


# ---------------------------------------------------------------------------
# Lazy provider clients
# ---------------------------------------------------------------------------
_anthropic_client = None
_cerebras_client = None
_openai_client = None


def _get_anthropic_client() -> anthropic.AsyncAnthropic:
    global _anthropic_client
    if _anthropic_client is None:
        if not ANTHROPIC_API_KEY:
            raise ModelInvocationError(
                "ANTHROPIC_API_KEY not set. Add it to .env or choose the all-cerebras preset."
            )
        _anthropic_client = anthropic.AsyncAnthropic(api_key=ANTHROPIC_API_KEY)
    return _anthropic_client


def _get_cerebras_client() -> openai.AsyncOpenAI:
    global _cerebras_client
    if _cerebras_client is None:
        if not CEREBRAS_API_KEY:
            raise ModelInvocationError("CEREBRAS_API_KEY not set. Add it to .env.")
        _cerebras_client = openai.AsyncOpenAI(api_key=CEREBRAS_API_KEY, base_url=CEREBRAS_BASE_URL)
    return _cerebras_client


def _get_openai_client() -> openai.AsyncOpenAI:
    global _openai_client
    if _openai_client is None:
        if not OPENAI_API_KEY:
            raise ModelInvocationError("OPENAI_API_KEY not set. Add it to .env.")
        _openai_client = openai.AsyncOpenAI(api_key=OPENAI_API_KEY)
    return _openai_client


# ---------------------------------------------------------------------------
# Provider calls
# ---------------------------------------------------------------------------

async def _call_anthropic(config: ModelConfig, messages: list[dict]) -> ModelResponse:
    client = _get_anthropic_client()
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    turns = [{"role": m["role"], "content": m["content"]} for m in messages if m["role"] != "system"]

    response = await client.messages.create(
        model=config.model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        system=system,
        messages=turns,
    )

    text = ""
    for block in response.content:
        if hasattr(block, "text"):
            text = block.text
            break

    return ModelResponse(
        content=text,
        model=response.model,
        input_tokens=response.usage.input_tokens,
        output_tokens=response.usage.output_tokens,
    )


async def _call_chat_completions(client: openai.AsyncOpenAI, config: ModelConfig,
                                 messages: list[dict]) -> ModelResponse:
    response = await client.chat.completions.create(
        model=config.model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        messages=[{"role": m["role"], "content": m["content"]} for m in messages],
    )
    text = response.choices[0].message.content if response.choices else ""
    usage = response.usage
    return ModelResponse(
        content=text or "",
        model=response.model or config.model,
        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
    )


async def _dispatch(config: ModelConfig, messages: list[dict]) -> ModelResponse:
    if config.provider == "anthropic":
        return await _call_anthropic(config, messages)
    if config.provider == "cerebras":
        return await _call_chat_completions(_get_cerebras_client(), config, messages)
    if config.provider == "openai":
        return await _call_chat_completions(_get_openai_client(), config, messages)
    raise ModelInvocationError(f"Unknown provider: {config.provider}")


# ---------------------------------------------------------------------------
# Invoker
# ---------------------------------------------------------------------------

class ModelInvoker:
    """Role-addressed model caller bound to one preset.

    Anything with ``preset_name``, ``config_for(role)`` and an async
    ``call(role, messages)`` can stand in for this class (tests use a scripted
    fake).
    """

    def __init__(self, preset: ModelPreset | str | None = None,
                 timeout: float = MODEL_TIMEOUT_SECONDS,
                 session_id: str | None = None):
        self.preset = preset if isinstance(preset, ModelPreset) else load_preset(preset)
        self.timeout = timeout
        self.session_id = session_id

    @property
    def preset_name(self) -> str:
        return self.preset.name

    def config_for(self, role: str) -> ModelConfig:
        return self.preset.config_for(role)

    async def call(self, role: str, messages: list[dict]) -> ModelResponse:
        config = self.config_for(role)
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(_dispatch(config, messages), timeout=self.timeout)
        except ModelInvocationError:
            raise
        except asyncio.TimeoutError:
            logger.error(f"[model_factory] {role} call to {config.provider}/{config.model} "
                         f"timed out after {self.timeout:.0f}s")
            raise ModelInvocationError(f"{config.provider} {role} call timed out")
        except Exception as e:
            logger.error(f"[model_factory] {role} call to {config.provider}/{config.model} failed: {e}")
            raise ModelInvocationError(f"{config.provider} API error: {e}") from e

        response.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"[model_factory] role={role} provider={config.provider} model={response.model} "
            f"input_tokens={response.input_tokens} output_tokens={response.output_tokens} "
            f"duration_ms={response.duration_ms}"
        )
        await database.log_model_usage(
            role=role,
            provider=config.provider,
            model=response.model,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            duration_ms=response.duration_ms,
            preset=self.preset_name,
            session_id=self.session_id,
        )
        return response


def create_invoker(preset_override: str | None = None, session_id: str | None = None) -> ModelInvoker:
    """Build an invoker for a request; ``preset_override`` wins over MODEL_PRESET."""
    return ModelInvoker(load_preset(preset_override), session_id=session_id)
