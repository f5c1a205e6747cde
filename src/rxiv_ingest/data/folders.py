"""Resolve a month or batch selector to the bucket folder that holds its archives.

The source buckets use two layouts. From December 2018 onwards archives live under
``Current_Content/<Month>_<Year>/``; older material was published in numbered batches
under ``Back_Content/Batch_<NN>/`` (``medRxiv_Batch_<NN>`` on medRxiv) with no
deterministic month-to-batch mapping.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import ConfigurationError
from ..types import ContentEra, Server

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

CURRENT_CONTENT_CUTOFF = (2018, 12)
CURRENT_CONTENT_ROOT = "Current_Content"
BACK_CONTENT_ROOT = "Back_Content"

_ISO_MONTH = re.compile(r"^(\d{4})-(\d{2})$")
_NAMED_MONTH = re.compile(r"^([A-Za-z]+)_(\d{4})$")
_BATCH_PREFIX = re.compile(r"^(?:medrxiv[-_]?)?(?:batch[-_]?)?", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class FolderReference:
    """Location of one period's archives inside a source bucket."""

    server: Server
    era: ContentEra
    batch_label: str
    prefix: str

    @property
    def period_month(self) -> str | None:
        """``YYYY-MM`` for current-content folders, ``None`` for back-content batches."""
        if self.era is not ContentEra.CURRENT:
            return None
        name, year = self.batch_label.split("_")
        return f"{year}-{MONTH_NAMES.index(name) + 1:02d}"


def coerce_server(server: Server | str) -> Server:
    if isinstance(server, Server):
        return server
    try:
        return Server(str(server).strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Invalid server {server!r}; expected 'biorxiv' or 'medrxiv'."
        ) from None


def normalize_batch(batch: int | str, server: Server | str = Server.BIORXIV) -> str:
    """Return the canonical folder name for a back-content batch.

    ``1``, ``"01"``, ``"batch-1"`` and ``"Batch_01"`` all map to ``"Batch_01"`` (or
    ``"medRxiv_Batch_01"`` for medRxiv). Already-normalized labels map to themselves.
    """

    server = coerce_server(server)
    if isinstance(batch, bool):
        raise ConfigurationError(f"Invalid batch format: {batch!r}.")
    if isinstance(batch, int):
        number = batch
    else:
        digits = _BATCH_PREFIX.sub("", batch.strip(), count=1).lstrip("0")
        number = int(digits) if digits.isascii() and digits.isdigit() else 0
    if number < 1:
        raise ConfigurationError(
            f"Invalid batch format: {batch!r}. Expected a positive number or batch identifier."
        )
    label = f"Batch_{number:02d}"
    return f"medRxiv_{label}" if server is Server.MEDRXIV else label


def normalize_month(month: str) -> tuple[int, int]:
    """Parse ``YYYY-MM`` or ``Month_YYYY`` into ``(year, month)``."""

    text = month.strip()
    iso = _ISO_MONTH.match(text)
    if iso:
        year, number = int(iso.group(1)), int(iso.group(2))
        if 1 <= number <= 12:
            return year, number
    named = _NAMED_MONTH.match(text)
    if named:
        lookup = [name.lower() for name in MONTH_NAMES]
        name = named.group(1).lower()
        if name in lookup:
            return int(named.group(2)), lookup.index(name) + 1
    raise ConfigurationError(
        f"Invalid month format: {month!r}. Expected YYYY-MM or Month_YYYY format."
    )


def resolve_folder(
    *,
    month: str | None = None,
    batch: int | str | None = None,
    server: Server | str = Server.BIORXIV,
) -> FolderReference:
    """Map exactly one of *month* / *batch* to a :class:`FolderReference`."""

    server = coerce_server(server)
    has_month = month is not None and str(month).strip() != ""
    has_batch = batch is not None and str(batch).strip() != ""
    if has_month and has_batch:
        raise ConfigurationError("Either month or batch must be specified, not both.")
    if not has_month and not has_batch:
        raise ConfigurationError("Either month or batch must be specified.")

    if has_batch:
        assert batch is not None
        label = normalize_batch(batch, server)
        return FolderReference(
            server=server,
            era=ContentEra.BACK,
            batch_label=label,
            prefix=f"{BACK_CONTENT_ROOT}/{label}/",
        )

    assert month is not None
    year, number = normalize_month(month)
    if (year, number) < CURRENT_CONTENT_CUTOFF:
        raise ConfigurationError(
            f"Date {month} is in the Back_Content period. Please specify a batch using "
            "--batch; available batches can be listed from the Back_Content/ folder."
        )
    label = f"{MONTH_NAMES[number - 1]}_{year}"
    return FolderReference(
        server=server,
        era=ContentEra.CURRENT,
        batch_label=label,
        prefix=f"{CURRENT_CONTENT_ROOT}/{label}/",
    )


__all__ = [
    "BACK_CONTENT_ROOT",
    "CURRENT_CONTENT_CUTOFF",
    "CURRENT_CONTENT_ROOT",
    "FolderReference",
    "MONTH_NAMES",
    "coerce_server",
    "normalize_batch",
    "normalize_month",
    "resolve_folder",
]
