"""SQLAlchemy models describing the puzzle tables."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for ORM models."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Puzzle(Base):
    """One rebus puzzle of a daily batch."""

    __tablename__ = "puzzles"
    __table_args__ = (UniqueConstraint("date", "position", name="uq_puzzles_date_position"),)

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    date: Mapped[str] = mapped_column(String(10), index=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    image_reference: Mapped[str] = mapped_column(String(500), nullable=False)
    answer: Mapped[str] = mapped_column(String(255), nullable=False)
    hint: Mapped[str] = mapped_column(Text, nullable=False)
