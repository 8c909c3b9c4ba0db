from __future__ import annotations
"""
Blendoracle — Orchestrator
===========================
Coordinates one generation run and writes its progress to an EventChannel:

  generation-start
  → classify intent → build retrieval context
  → reasoning-start, reasoning-step ×3, reasoning-complete
  → per selected block: block-start, block-content, block-rationale
  → (image-ready events interleave as images resolve)
  → generation-complete

Stage guards inside the classifier, reasoning engine and content generator
absorb their own failures. Anything else escaping a stage ends the run with
a terminal ``error`` event (code ORCHESTRATION_ERROR). The channel is always
closed when the run ends.

Block generation is serial by default. With concurrency > 1 every block
starts at once under a semaphore, but events are still emitted strictly in
selection order.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from blendoracle import events
from blendoracle.config import (
    ESTIMATED_BLOCKS, GENERATION_CONCURRENCY, IMAGE_WAIT_SECONDS, VERIFY_IMAGES,
)
from blendoracle.content.context_builder import build_retrieval_context
from blendoracle.content.store import ContentStore, get_store
from blendoracle.content_generator import fallback_image_url, generate_block
from blendoracle.events import EventChannel
from blendoracle.images import ImageResolver, tag_images
from blendoracle.intent_classifier import classify_intent
from blendoracle.models import (
    BlockSelection, GeneratedBlock, IntentClassification, ReasoningResult, RetrievalContext,
)
from blendoracle.reasoning_engine import format_reasoning_steps, select_blocks
from blendoracle.session_context import SessionContextStore

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    intent: IntentClassification
    context: RetrievalContext
    reasoning: ReasoningResult
    blocks: list[GeneratedBlock] = field(default_factory=list)
    duration_ms: int = 0


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class Orchestrator:
    def __init__(
        self,
        invoker,
        store: ContentStore | None = None,
        sessions: SessionContextStore | None = None,
        concurrency: int = GENERATION_CONCURRENCY,
        image_wait: float = IMAGE_WAIT_SECONDS,
        verify_images: bool = VERIFY_IMAGES,
    ):
        self.invoker = invoker
        self.store = store
        self.sessions = sessions
        self.concurrency = max(1, concurrency)
        self.image_wait = image_wait
        self.verify_images = verify_images

    # -----------------------------------------------------------------------
    # Block generation
    # -----------------------------------------------------------------------

    async def _generate(self, index: int, block: BlockSelection, result: ReasoningResult,
                        context: RetrievalContext, query: str, resolver: ImageResolver,
                        fallback_image: str | None, semaphore: asyncio.Semaphore | None) -> GeneratedBlock:
        if semaphore is not None:
            async with semaphore:
                generated = await generate_block(block, result, context, query, self.invoker, self.store)
        else:
            generated = await generate_block(block, result, context, query, self.invoker, self.store)

        if not generated.failed and generated.type not in ("reasoning-user", "follow-up"):
            generated.html, placeholders = tag_images(generated.html, index)
            # Resolution starts now, so image-ready may beat this block's content event
            resolver.schedule(placeholders, fallback_image)
        return generated

    async def _stream_blocks(self, query: str, result: ReasoningResult, context: RetrievalContext,
                             channel: EventChannel, resolver: ImageResolver) -> list[GeneratedBlock]:
        selections = result.selected_blocks
        fallback_image = fallback_image_url(context)
        tasks: dict[int, asyncio.Task] = {}

        if self.concurrency > 1:
            semaphore = asyncio.Semaphore(self.concurrency)
            for i, block in enumerate(selections):
                tasks[i] = asyncio.create_task(self._generate(
                    i, block, result, context, query, resolver, fallback_image, semaphore,
                ))

        generated_blocks: list[GeneratedBlock] = []
        try:
            for i, block in enumerate(selections):
                await channel.emit(events.block_start(block.type, i))
                if i in tasks:
                    generated = await tasks[i]
                else:
                    generated = await self._generate(
                        i, block, result, context, query, resolver, fallback_image, None,
                    )
                generated_blocks.append(generated)
                await channel.emit(events.block_content(generated.html, generated.section_style))
                await channel.emit(events.block_rationale(block.type, block.rationale))
        finally:
            for task in tasks.values():
                if not task.done():
                    task.cancel()
        return generated_blocks

    # -----------------------------------------------------------------------
    # Run
    # -----------------------------------------------------------------------

    async def run(self, query: str, channel: EventChannel, history: list[dict] | None = None,
                  session_id: str | None = None, generated_path: str | None = None) -> RunResult | None:
        """Execute one run, emitting into ``channel``. Returns None if the run errored."""
        start = time.monotonic()
        resolver = ImageResolver(channel.try_emit, verify=self.verify_images)
        store = self.store or get_store()

        try:
            await channel.emit(events.generation_start(query, ESTIMATED_BLOCKS))

            intent = await classify_intent(query, self.invoker, history)
            context = build_retrieval_context(query, intent, store)

            reasoning_config = self.invoker.config_for("reasoning")
            await channel.emit(events.reasoning_start(reasoning_config.model, self.invoker.preset_name))
            reasoning_started = time.monotonic()

            result = await select_blocks(query, intent, context, self.invoker, history)
            for step in format_reasoning_steps(result.reasoning):
                await channel.emit(events.reasoning_step(**step))
            await channel.emit(events.reasoning_complete(result.confidence, _elapsed_ms(reasoning_started)))

            blocks = await self._stream_blocks(query, result, context, channel, resolver)

            await resolver.drain(self.image_wait)

            duration = _elapsed_ms(start)
            await channel.emit(events.generation_complete(
                total_blocks=len(blocks),
                duration_ms=duration,
                intent=intent.to_dict(),
                reasoning={
                    "journeyStage": result.user_journey.current_stage,
                    "confidence": result.confidence,
                    "nextBestAction": result.user_journey.next_best_action,
                    "suggestedFollowUps": result.user_journey.suggested_follow_ups,
                },
                recommendations={
                    "products": [p.get("name") for p in context.products],
                    "recipes": [r.get("name") for r in context.recipes],
                    "blockTypes": [b.type for b in blocks],
                },
            ))

            if self.sessions is not None and session_id:
                try:
                    await self.sessions.record(session_id, query, intent, generated_path)
                except Exception as e:
                    logger.warning(f"[orchestrator] session update failed for {session_id}: {e}")

            failed = sum(1 for b in blocks if b.failed)
            logger.info(
                f"[orchestrator] run complete: {len(blocks)} blocks ({failed} failed) in {duration}ms "
                f"preset={self.invoker.preset_name}"
            )
            return RunResult(intent=intent, context=context, reasoning=result,
                             blocks=blocks, duration_ms=duration)

        except Exception as e:
            logger.exception(f"[orchestrator] run failed: {e}")
            await resolver.drain(0)
            await channel.try_emit(events.error(str(e) or type(e).__name__, events.ORCHESTRATION_ERROR))
            return None

        finally:
            channel.close()
