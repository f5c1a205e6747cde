"""Error types for the ingestion pipeline.

Every error carries an :class:`ErrorKind` so callers branch on the kind of failure
instead of inspecting message text.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    EXTRACTION = "extraction"
    METADATA = "metadata"
    DUPLICATE = "duplicate"

    def __str__(self) -> str:
        return self.value


class IngestError(Exception):
    """Base exception for all rxiv-ingest errors."""

    kind: ErrorKind = ErrorKind.TRANSPORT


class ConfigurationError(IngestError):
    """Malformed selector, size filter, or missing credential. Raised before any work."""

    kind = ErrorKind.CONFIGURATION


class TransportError(IngestError):
    """Object store or catalog unreachable, or it answered with an error status."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExtractionError(IngestError):
    """Manifest or manuscript XML missing from an archive, or not written to disk."""

    kind = ErrorKind.EXTRACTION


class MetadataError(IngestError):
    """Manuscript XML could not be parsed or lacks a DOI or any usable date."""

    kind = ErrorKind.METADATA


class DuplicateConflict(IngestError):
    """The catalog already holds a record for this (doi, version)."""

    kind = ErrorKind.DUPLICATE

    def __init__(self, message: str, *, doi: str | None = None, version: int | None = None) -> None:
        super().__init__(message)
        self.doi = doi
        self.version = version


__all__ = [
    "ConfigurationError",
    "DuplicateConflict",
    "ErrorKind",
    "ExtractionError",
    "IngestError",
    "MetadataError",
    "TransportError",
]
