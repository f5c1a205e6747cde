"""Enumerate the MECA archives stored under a bucket folder."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from ..types import ContentEra
from .folders import BACK_CONTENT_ROOT, CURRENT_CONTENT_ROOT, MONTH_NAMES
from .store import MAX_KEYS_PER_REQUEST, ObjectStoreClient

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".meca"


@dataclass(slots=True)
class RemoteArchiveEntry:
    """One archive object found while listing a folder."""

    key: str
    size_bytes: int
    last_modified: datetime
    batch_label: str

    @property
    def file_name(self) -> str:
        return self.key.rsplit("/", maxsplit=1)[-1]


def list_archives(
    store: ObjectStoreClient,
    prefix: str,
    *,
    batch_label: str,
    extension: str = DEFAULT_EXTENSION,
    limit: int | None = None,
) -> list[RemoteArchiveEntry]:
    """Page through *prefix* and return archive entries in provider order.

    Stops once *limit* entries have been collected; surplus entries of the final page
    are dropped. Store errors propagate as :class:`~rxiv_ingest.errors.TransportError`.
    """

    if limit is not None and limit <= 0:
        return []

    entries: list[RemoteArchiveEntry] = []
    token: str | None = None
    page_number = 0
    while True:
        page_number += 1
        remaining = MAX_KEYS_PER_REQUEST if limit is None else limit - len(entries)
        page = store.list_page(
            prefix,
            continuation_token=token,
            max_keys=min(MAX_KEYS_PER_REQUEST, remaining),
        )
        matching = [
            RemoteArchiveEntry(
                key=obj.key,
                size_bytes=obj.size,
                last_modified=obj.last_modified,
                batch_label=batch_label,
            )
            for obj in page.objects
            if obj.key.endswith(extension)
        ]
        entries.extend(matching)
        logger.debug(
            "Page %d under %s: %d objects, %d archives",
            page_number,
            prefix,
            len(page.objects),
            len(matching),
        )
        if limit is not None and len(entries) >= limit:
            del entries[limit:]
            logger.info("Reached limit of %d archives under %s", limit, prefix)
            break
        token = page.next_token
        if not token:
            break

    logger.info("Found %d archives under %s", len(entries), prefix)
    return entries


def _month_folder_key(name: str) -> tuple[int, int]:
    month, _, year = name.partition("_")
    if month not in MONTH_NAMES or not year.isdigit():
        return (0, 0)
    return (int(year), MONTH_NAMES.index(month) + 1)


def _batch_folder_key(name: str) -> tuple[int, str]:
    digits = name.rsplit("_", maxsplit=1)[-1]
    return (int(digits) if digits.isdigit() else 0, name)


def list_content_folders(store: ObjectStoreClient) -> dict[ContentEra, list[str]]:
    """Folder names under both content roots: months newest first, batches ascending."""

    months = store.list_folders(f"{CURRENT_CONTENT_ROOT}/")
    batches = store.list_folders(f"{BACK_CONTENT_ROOT}/")
    return {
        ContentEra.CURRENT: sorted(months, key=_month_folder_key, reverse=True),
        ContentEra.BACK: sorted(batches, key=_batch_folder_key),
    }


__all__ = ["DEFAULT_EXTENSION", "RemoteArchiveEntry", "list_archives", "list_content_folders"]
