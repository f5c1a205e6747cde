"""Expand command-line month and batch selectors into individual periods."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date

from ..errors import ConfigurationError
from .folders import CURRENT_CONTENT_CUTOFF

MAX_BATCH_RANGE = 100

_WILDCARD = re.compile(r"^(\d{4})-\*$")
_MONTH = re.compile(r"^(\d{4})-(\d{2})$")
_RANGE = re.compile(r"^(\d+)-(\d+)$")
_BATCH_TOKEN = re.compile(r"^[\w-]+$")


def _today(today: date | None) -> date:
    return today or date.today()


def validate_month_format(month: str) -> bool:
    match = _MONTH.match(month)
    if not match:
        return False
    year, number = int(match.group(1)), int(match.group(2))
    return year <= 2100 and 1 <= number <= 12


def is_future_month(month: str, *, today: date | None = None) -> bool:
    current = _today(today)
    year, number = (int(part) for part in month.split("-"))
    return (year, number) > (current.year, current.month)


def expand_wildcard(pattern: str, *, today: date | None = None) -> list[str]:
    """Expand ``YYYY-*`` to every month of that year, stopping at the current month."""

    match = _WILDCARD.match(pattern.strip())
    if not match:
        raise ConfigurationError(
            f'Invalid wildcard pattern: {pattern}. Use a format like "2025-*".'
        )
    year = int(match.group(1))
    current = _today(today)
    months: list[str] = []
    for number in range(1, 13):
        if year == current.year and number > current.month:
            break
        months.append(f"{year}-{number:02d}")
    return months


def generate_month_range(*, today: date | None = None) -> list[str]:
    """Every month from the current one back to the first current-content month, newest first."""

    current = _today(today)
    year, number = current.year, current.month
    months: list[str] = []
    while (year, number) >= CURRENT_CONTENT_CUTOFF:
        months.append(f"{year}-{number:02d}")
        number -= 1
        if number == 0:
            year, number = year - 1, 12
    return months


def sort_months(months: Iterable[str]) -> list[str]:
    return sorted(months, key=lambda value: tuple(int(part) for part in value.split("-")))


def parse_month_selector(selector: str | None, *, today: date | None = None) -> list[str]:
    """Turn a ``--month`` value into a de-duplicated, chronologically sorted month list.

    Accepts a single ``YYYY-MM``, a comma-separated list, ``YYYY-*`` wildcards, or
    nothing at all (every month back to December 2018).
    """

    if selector is None or not selector.strip():
        return sort_months(generate_month_range(today=today))

    months: list[str] = []
    for part in (piece.strip() for piece in selector.split(",")):
        if not part:
            continue
        if "*" in part:
            months.extend(expand_wildcard(part, today=today))
        else:
            months.append(part)

    invalid = [month for month in months if not validate_month_format(month)]
    if invalid:
        raise ConfigurationError(
            f"Invalid month format(s): {', '.join(invalid)}. Expected YYYY-MM (e.g. 2025-01)."
        )
    return sort_months(dict.fromkeys(months))


def _expand_range(start: int, end: int) -> list[str]:
    if start > end:
        raise ConfigurationError(
            f"Invalid batch range: start ({start}) cannot be greater than end ({end})."
        )
    if end - start >= MAX_BATCH_RANGE:
        raise ConfigurationError(
            f"Batch range too large: {end - start + 1} batches. Maximum allowed: {MAX_BATCH_RANGE}."
        )
    return [str(number) for number in range(start, end + 1)]


def parse_batch_selector(selector: str) -> list[str]:
    """Turn a ``--batch`` value (``3``, ``1-10``, ``batch-1,Batch_04,7-9``) into batch tokens."""

    batches: list[str] = []
    for part in (piece.strip() for piece in selector.split(",")):
        if not part:
            continue
        range_match = _RANGE.match(part)
        if range_match:
            batches.extend(_expand_range(int(range_match.group(1)), int(range_match.group(2))))
        elif _BATCH_TOKEN.match(part):
            batches.append(part)
        else:
            raise ConfigurationError(f"Invalid batch format: {part!r}.")
    if not batches:
        raise ConfigurationError("No batches given.")
    return batches


__all__ = [
    "MAX_BATCH_RANGE",
    "expand_wildcard",
    "generate_month_range",
    "is_future_month",
    "parse_batch_selector",
    "parse_month_selector",
    "sort_months",
    "validate_month_format",
]
