"""Client that asks the text model for the day's five rebus prompts."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Sequence

from openai import APIError, APIStatusError, AsyncOpenAI
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from rebus.config.settings import Settings
from rebus.errors import ShapeError, TransportError
from rebus.metrics.prometheus_exporter import prompt_cache_requests_total

logger = logging.getLogger(__name__)

PROMPTS_PER_DAY = 5

SYSTEM_PROMPT = """You are an expert at creating rebus puzzles. A rebus puzzle uses pictures, \
words, or symbols arranged to represent a word or phrase.

Guidelines:
- Use very common, widely recognized phrases or words (for example "break the ice", \
"piece of cake", "time flies", "rainbow").
- Avoid obscure idioms, technical terms, and niche references.
- Keep every puzzle suitable for all ages.
- Describe the visual elements clearly enough for an image model to draw them.

Return ONLY a JSON array with exactly 5 objects of this shape:
[
  {
    "text": "detailed description of what the rebus image shows",
    "answer": "the common phrase or word the image represents",
    "hint": "a short clue that helps without giving the answer away"
  }
]"""

USER_PROMPT_TEMPLATE = """Generate exactly 5 different rebus puzzles for {date}.

For each puzzle provide:
1. text: a detailed description of the image. Say which words, pictures or symbols \
appear and how they are arranged. The image will have a black background with white elements.
2. answer: a very common phrase or word most people would recognize.
3. hint: an encouraging clue that does not reveal the answer.

Vary the puzzle types (word combinations, picture-word mixes, symbol arrangements)."""


class PuzzlePrompt(BaseModel):
    """One generation unit: image description plus the expected answer."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str = Field(min_length=1, validation_alias=AliasChoices("text", "prompt"))
    answer: str = Field(min_length=1)
    hint: str = Field(min_length=1)

    @field_validator("text", "hint", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("answer", mode="before")
    @classmethod
    def _normalise_answer(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().casefold()
        return value


class PromptCache:
    """Per-date store of generated prompts, kept for the process lifetime."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[PuzzlePrompt, ...]] = {}
        self._lock = asyncio.Lock()

    async def get(self, date: str) -> tuple[PuzzlePrompt, ...] | None:
        async with self._lock:
            return self._entries.get(date)

    async def put(self, date: str, prompts: Sequence[PuzzlePrompt]) -> tuple[PuzzlePrompt, ...]:
        """Store prompts unless another caller already did; return the cached entry."""

        async with self._lock:
            existing = self._entries.get(date)
            if existing is not None:
                return existing
            entry = tuple(prompts)
            self._entries[date] = entry
            return entry

    def __contains__(self, date: object) -> bool:
        return date in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def parse_prompts(raw_text: str) -> tuple[PuzzlePrompt, ...]:
    """Extract and validate the JSON array of prompts embedded in a model reply."""

    start = raw_text.find("[")
    end = raw_text.rfind("]")
    if start == -1 or end == -1 or end < start:
        raise ShapeError("Could not find a JSON array in the prompt service response.")

    try:
        payload = json.loads(raw_text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise ShapeError(f"Prompt array is not valid JSON: {exc}") from exc

    if not isinstance(payload, list):
        raise ShapeError("Prompt payload is not an array.")
    if len(payload) != PROMPTS_PER_DAY:
        raise ShapeError(f"Expected {PROMPTS_PER_DAY} prompts, got {len(payload)}.")

    prompts: list[PuzzlePrompt] = []
    for index, item in enumerate(payload):
        try:
            prompts.append(PuzzlePrompt.model_validate(item))
        except ValidationError as exc:
            raise ShapeError(f"Prompt {index} is malformed: {exc.errors()[0]['msg']}") from exc
    return tuple(prompts)


class PromptSource:
    """Fetches five prompts per date from the chat model, caching by date."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: Any | None = None,
        cache: PromptCache | None = None,
    ) -> None:
        if client is None:
            if not settings.prompt_api_key:
                raise RuntimeError("Prompt service API key is not configured.")
            client = AsyncOpenAI(
                api_key=settings.prompt_api_key,
                base_url=settings.prompt_base_url,
                timeout=settings.request_timeout,
            )
        self._settings = settings
        self._client = client
        self._cache = cache if cache is not None else PromptCache()

    @property
    def cache(self) -> PromptCache:
        return self._cache

    async def get_prompts(self, date: str) -> tuple[PuzzlePrompt, ...]:
        """Return the five prompts for ``date``, calling the model on a cache miss."""

        cached = await self._cache.get(date)
        if cached is not None:
            prompt_cache_requests_total.labels(result="hit").inc()
            logger.info("Using cached prompts for %s", date)
            return cached

        prompt_cache_requests_total.labels(result="miss").inc()
        logger.info("Requesting %d rebus prompts for %s", PROMPTS_PER_DAY, date)
        content = await self._complete(date)
        prompts = parse_prompts(content)
        stored = await self._cache.put(date, prompts)
        logger.info("Prompts cached for %s", date)
        return stored

    async def _complete(self, date: str) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._settings.prompt_model,
                max_tokens=self._settings.prompt_max_tokens,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": USER_PROMPT_TEMPLATE.format(date=date)},
                ],
            )
        except APIStatusError as exc:
            raise TransportError(
                f"Prompt service returned status {exc.status_code}: {exc.message}",
                status_code=exc.status_code,
            ) from exc
        except APIError as exc:
            raise TransportError(f"Prompt service request failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ShapeError("Prompt service returned no choices.")
        content = choices[0].message.content
        if not content:
            raise ShapeError("Prompt service returned an empty message.")
        return content

    async def ping(self) -> bool:
        """Return ``True`` if the upstream service responds to a model listing call."""

        models = await self._client.models.list()
        return bool(models.data)

    async def close(self) -> None:
        """Release HTTP resources."""

        await self._client.close()
