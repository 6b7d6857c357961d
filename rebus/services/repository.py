"""Transactional persistence of daily puzzle batches."""

from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rebus.db import models
from rebus.errors import PersistenceError
from rebus.services.assembler import PuzzleRecord

logger = logging.getLogger(__name__)


def _to_record(row: models.Puzzle) -> PuzzleRecord:
    return PuzzleRecord(
        id=row.id,
        date=row.date,
        position=row.position,
        image_reference=row.image_reference,
        answer=row.answer,
        hint=row.hint,
    )


class PuzzleRepository:
    """Facade over the puzzles table; the only durable owner of puzzle records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def exists(self, date: str) -> bool:
        """Return ``True`` when any record is stored for ``date``."""

        stmt = select(func.count()).select_from(models.Puzzle).where(models.Puzzle.date == date)
        try:
            async with self._session_factory() as session:
                count = (await session.execute(stmt)).scalar_one()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to check puzzles for {date}: {exc}") from exc
        return count > 0

    async def replace_all(self, date: str, records: Sequence[PuzzleRecord]) -> None:
        """Delete the batch for ``date`` and insert ``records`` in one transaction."""

        foreign = [record.id for record in records if record.date != date]
        if foreign:
            raise ValueError(f"Records {foreign} do not belong to {date}.")

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(delete(models.Puzzle).where(models.Puzzle.date == date))
                    session.add_all(
                        models.Puzzle(
                            id=record.id,
                            date=record.date,
                            position=record.position,
                            image_reference=record.image_reference,
                            answer=record.answer,
                            hint=record.hint,
                        )
                        for record in records
                    )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save puzzles for {date}: {exc}") from exc
        logger.info("Stored %d puzzles for %s", len(records), date)

    async def list_for_date(self, date: str) -> list[PuzzleRecord]:
        """Return the batch for ``date`` ordered by position."""

        stmt = select(models.Puzzle).where(models.Puzzle.date == date).order_by(models.Puzzle.position)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_record(row) for row in result.scalars().all()]

    async def get(self, puzzle_id: str) -> PuzzleRecord | None:
        async with self._session_factory() as session:
            row = await session.get(models.Puzzle, puzzle_id)
            return _to_record(row) if row else None

    async def verify_answer(self, puzzle_id: str, answer: str) -> bool | None:
        """Compare a guess with the stored answer; ``None`` when the puzzle is unknown."""

        record = await self.get(puzzle_id)
        if record is None:
            return None
        return answer.strip().casefold() == record.answer.strip().casefold()
