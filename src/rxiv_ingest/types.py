"""Shared type definitions and enumerations for rxiv-ingest."""

from __future__ import annotations

from enum import Enum


class Server(str, Enum):
    """Preprint servers whose source buckets can be ingested."""

    BIORXIV = "biorxiv"
    MEDRXIV = "medrxiv"

    def __str__(self) -> str:
        return self.value


class ContentEra(str, Enum):
    """Storage era of a bucket folder (``Current_Content`` or ``Back_Content``)."""

    CURRENT = "current"
    BACK = "back"

    def __str__(self) -> str:
        return self.value


__all__ = ["ContentEra", "Server"]
