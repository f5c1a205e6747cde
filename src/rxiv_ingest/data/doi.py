"""Helpers for bioRxiv/medRxiv DOIs and the URLs that carry them."""

from __future__ import annotations

import re
from dataclasses import dataclass

# Legacy 10.1101 plus the prefix used for deposits from December 2025 on.
DOI_PREFIXES = ("10.1101", "10.64898")

_PREFIX = "(10\\.1101|10\\.64898)"
_DATED_DOI = re.compile(rf"^{_PREFIX}/(\d{{4}})\.(\d{{2}})\.(\d{{2}})\.(\d{{6,8}})(v\d+)?$")
_LEGACY_DOI = re.compile(rf"^{_PREFIX}/(\d{{6,8}})(v\d+)?$")
_VERSION_SUFFIX = re.compile(r"v(\d+)$")
_URL_PATTERNS = (
    re.compile(r"biorxiv\.org/content/([^?#]+)"),
    re.compile(r"medrxiv\.org/content/([^?#]+)"),
    re.compile(r"doi\.org/([^?#]+)"),
)
_PAGE_SUFFIX = re.compile(r"\.(article-info|full|abstract|pdf|suppl)$")


@dataclass(slots=True)
class DOIParts:
    """Components of a preprint DOI such as ``10.1101/2024.01.05.574321v2``."""

    doi: str
    prefix: str
    suffix: str
    date: str | None
    identifier: str
    version: str | None

    @property
    def base_doi(self) -> str:
        return f"{self.prefix}/{self.suffix}"


def parse_doi(doi: str) -> DOIParts | None:
    """Split a date-based or legacy numeric DOI; return ``None`` for anything else."""

    match = _DATED_DOI.match(doi)
    if match:
        prefix, year, month, day, identifier, version = match.groups()
        return DOIParts(
            doi=doi,
            prefix=prefix,
            suffix=extract_base_doi(doi.split("/", maxsplit=1)[1]),
            date=f"{year}-{month}-{day}",
            identifier=identifier,
            version=version,
        )
    match = _LEGACY_DOI.match(doi)
    if match:
        prefix, identifier, version = match.groups()
        return DOIParts(
            doi=doi,
            prefix=prefix,
            suffix=identifier,
            date=None,
            identifier=identifier,
            version=version,
        )
    return None


def is_valid_doi(doi: str) -> bool:
    return parse_doi(doi) is not None


def extract_base_doi(doi: str) -> str:
    return _VERSION_SUFFIX.sub("", doi)


def extract_version_suffix(doi: str) -> int | None:
    """Return ``N`` for a DOI ending in ``vN``."""
    match = _VERSION_SUFFIX.search(doi)
    return int(match.group(1)) if match else None


def extract_doi_from_url(url: str) -> str | None:
    """Pull a DOI out of a biorxiv.org, medrxiv.org or doi.org URL, or a bare DOI."""

    text = url.strip()
    doi: str | None = None
    for pattern in _URL_PATTERNS:
        match = pattern.search(text)
        if match:
            doi = match.group(1)
            break
    else:
        if text.startswith(tuple(f"{prefix}/" for prefix in DOI_PREFIXES)):
            doi = text
    if doi is None:
        return None
    return _PAGE_SUFFIX.sub("", doi)


__all__ = [
    "DOIParts",
    "DOI_PREFIXES",
    "extract_base_doi",
    "extract_doi_from_url",
    "extract_version_suffix",
    "is_valid_doi",
    "parse_doi",
]
