"""Helpers for human-readable file sizes."""

from __future__ import annotations

import re

from ..errors import ConfigurationError

_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(B|KB|MB|GB|TB)$", re.IGNORECASE)
_UNITS = ("B", "KB", "MB", "GB", "TB")
_MULTIPLIERS = {unit: 1024**power for power, unit in enumerate(_UNITS)}


def parse_file_size(value: str) -> int:
    """Convert strings such as ``"100MB"`` or ``"1.5 GB"`` into a byte count.

    Units are 1024-based. Raises :class:`ConfigurationError` for anything else.
    """

    match = _SIZE_PATTERN.match(value.strip())
    if match is None:
        raise ConfigurationError(
            f'Invalid file size: {value!r}. Use a format like "100MB" or "2GB".'
        )
    number = float(match.group(1))
    unit = match.group(2).upper()
    return int(number * _MULTIPLIERS[unit])


def format_file_size(num_bytes: float) -> str:
    if num_bytes <= 0:
        return "0 B"
    index = 0
    while num_bytes >= 1024 ** (index + 1) and index < len(_UNITS) - 1:
        index += 1
    scaled = round(num_bytes / 1024**index, 2)
    text = f"{scaled:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_UNITS[index]}"


__all__ = ["format_file_size", "parse_file_size"]
