"""Date and puzzle id helpers."""

from __future__ import annotations

from datetime import date as date_type, datetime

DATE_FORMAT = "%Y-%m-%d"


def format_date(value: date_type | datetime) -> str:
    return value.strftime(DATE_FORMAT)


def validate_date(value: str) -> str:
    """Return ``value`` unchanged when it is a real ``YYYY-MM-DD`` date."""

    if len(value) != 10 or value[4] != "-" or value[7] != "-":
        raise ValueError("Invalid date format. Use YYYY-MM-DD.")
    try:
        datetime.strptime(value, DATE_FORMAT)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value}") from exc
    return value


def parse_puzzle_id(puzzle_id: str) -> tuple[str, int]:
    """Split ``YYYY-MM-DD-position`` into its date and position."""

    date_part, sep, position_part = puzzle_id.rpartition("-")
    if not sep or not position_part.isdigit():
        raise ValueError("Invalid puzzle ID format.")
    return validate_date(date_part), int(position_part)
