"""Pairing of prompts and rendered images into puzzle records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from rebus.errors import ArityError
from rebus.nlp.prompt_source import PuzzlePrompt

BATCH_SIZE = 5


def puzzle_id(date: str, position: int) -> str:
    return f"{date}-{position}"


@dataclass(frozen=True, slots=True)
class PuzzleRecord:
    """The persisted unit of a daily batch."""

    id: str
    date: str
    position: int
    image_reference: str
    answer: str
    hint: str


class BatchAssembler:
    """Combines a date's prompts with their image references by position."""

    def assemble(
        self,
        date: str,
        prompts: Sequence[PuzzlePrompt],
        image_references: Sequence[str],
    ) -> list[PuzzleRecord]:
        if len(prompts) != BATCH_SIZE or len(image_references) != BATCH_SIZE:
            raise ArityError(
                f"A batch needs {BATCH_SIZE} prompts and {BATCH_SIZE} images, "
                f"got {len(prompts)} and {len(image_references)}."
            )

        return [
            PuzzleRecord(
                id=puzzle_id(date, position),
                date=date,
                position=position,
                image_reference=reference,
                answer=prompt.answer,
                hint=prompt.hint,
            )
            for position, (prompt, reference) in enumerate(zip(prompts, image_references))
        ]
