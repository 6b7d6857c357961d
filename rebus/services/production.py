"""Batch production pipeline: prompts, renders, storage, persistence."""

from __future__ import annotations

import logging
from typing import Awaitable, Protocol, TypeVar

from rebus.errors import BatchProductionError, GenerationError
from rebus.imgproc.normalize import ImageNormalizer
from rebus.nlp.prompt_source import PuzzlePrompt
from rebus.services.assembler import BatchAssembler, PuzzleRecord
from rebus.services.repository import PuzzleRepository
from rebus.storage.backend import ImageStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PromptProvider(Protocol):
    async def get_prompts(self, date: str) -> tuple[PuzzlePrompt, ...]:
        ...


class ImageRenderer(Protocol):
    async def render_image(self, prompt_text: str) -> bytes:
        ...


class BatchProducer:
    """Produces and persists the full batch for one date, or nothing at all."""

    def __init__(
        self,
        prompts: PromptProvider,
        renderer: ImageRenderer,
        image_store: ImageStore,
        repository: PuzzleRepository,
        *,
        assembler: BatchAssembler | None = None,
        normalizer: ImageNormalizer | None = None,
    ) -> None:
        self._prompts = prompts
        self._renderer = renderer
        self._image_store = image_store
        self._repository = repository
        self._assembler = assembler or BatchAssembler()
        self._normalizer = normalizer or ImageNormalizer()

    async def produce(self, date: str) -> list[PuzzleRecord]:
        """Run every stage for ``date``; any failure aborts before the database write."""

        logger.info("Starting batch production for %s", date)
        prompts = await self._stage("prompts", date, self._prompts.get_prompts(date))
        logger.info("Received %d prompts for %s", len(prompts), date)

        # One render job in flight at a time.
        references: list[str] = []
        for position, prompt in enumerate(prompts):
            logger.info("Rendering image %d/%d for %s", position + 1, len(prompts), date)
            image = await self._stage("render", date, self._renderer.render_image(prompt.text), position)
            try:
                png = self._normalizer.normalize(image)
            except GenerationError as exc:
                raise BatchProductionError("render", date, exc, position) from exc
            reference = await self._stage("store", date, self._image_store.put(date, position, png), position)
            references.append(reference)

        try:
            records = self._assembler.assemble(date, prompts, references)
        except GenerationError as exc:
            raise BatchProductionError("assemble", date, exc) from exc

        await self._stage("persist", date, self._repository.replace_all(date, records))
        logger.info("Successfully generated and saved %d puzzles for %s", len(records), date)
        return records

    @staticmethod
    async def _stage(stage: str, date: str, call: Awaitable[T], position: int | None = None) -> T:
        try:
            return await call
        except GenerationError as exc:
            raise BatchProductionError(stage, date, exc, position) from exc
