"""Client for the catalog service and reconciliation of candidates against it."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..config import CatalogConfig
from ..errors import ConfigurationError, DuplicateConflict, TransportError
from .doi import extract_version_suffix, parse_doi
from .listing import RemoteArchiveEntry

logger = logging.getLogger(__name__)

USER_AGENT = "rxiv-ingest/0.1"


@dataclass(slots=True)
class RegisteredPage:
    """One page of ``GET /bucket/list``."""

    keys: list[str]
    total: int
    has_more: bool
    next_offset: int | None


@dataclass(slots=True)
class ReconciliationResult:
    processed: set[str] = field(default_factory=set)
    unresolved: set[str] = field(default_factory=set)
    mode: str = "bulk"

    def is_processed(self, key: str) -> bool:
        return key in self.processed


class CatalogClient:
    """Thin wrapper around the catalog REST API.

    One instance is shared by every worker of a run; ``httpx.Client`` is safe to use
    from several threads.
    """

    def __init__(self, config: CatalogConfig, *, client: httpx.Client | None = None) -> None:
        self.config = config
        headers = {"User-Agent": USER_AGENT}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = client or httpx.Client(
            base_url=config.base_url(), timeout=config.timeout, headers=headers
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> CatalogClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                f"Catalog answered with invalid JSON: {exc}", status_code=response.status_code
            ) from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        request = response.request
        raise TransportError(
            f"{request.method} {request.url} returned HTTP {response.status_code}",
            status_code=response.status_code,
        )

    def health(self) -> dict[str, Any]:
        """Call the unversioned ``/health`` endpoint; any non-200 answer raises."""

        response = self._send("GET", f"{self.config.api_url.rstrip('/')}/health")
        self._raise_for_status(response)
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    def list_registered(
        self, month: str, *, limit: int | None = None, offset: int = 0
    ) -> RegisteredPage:
        page_size = limit or self.config.page_size
        response = self._send(
            "GET",
            "/bucket/list",
            params={"month": month, "limit": page_size, "offset": offset},
        )
        self._raise_for_status(response)
        payload = self._json(response)
        if not isinstance(payload, dict):
            raise TransportError(
                f"Unexpected catalog listing for {month}: {type(payload).__name__} body",
                status_code=response.status_code,
            )
        files = payload.get("files")
        pagination = payload.get("pagination") or {}
        if not isinstance(files, list) or not isinstance(pagination, dict):
            raise TransportError(
                f"Unexpected catalog listing for {month}: missing files or pagination",
                status_code=response.status_code,
            )
        keys = [
            str(item["s3Key"]) for item in files if isinstance(item, dict) and item.get("s3Key")
        ]
        return RegisteredPage(
            keys=keys,
            total=int(pagination.get("total") or 0),
            has_more=bool(pagination.get("hasMore")),
            next_offset=pagination.get("nextOffset"),
        )

    def lookup_key(self, key: str) -> dict[str, Any] | None:
        """Return the work registered for an object key, or ``None`` when there is none."""

        response = self._send("GET", "/bucket", params={"key": key})
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return self._json(response)

    def get_work(self, doi: str) -> dict[str, Any] | None:
        """Fetch one work by DOI; a trailing ``vN`` selects a version."""

        parts = parse_doi(doi)
        if parts is None:
            raise ConfigurationError(f"Not a bioRxiv/medRxiv DOI: {doi}")
        suffix = parts.suffix
        version = extract_version_suffix(doi)
        if version is not None:
            suffix = f"{suffix}v{version}"
        response = self._send("GET", f"/works/{parts.prefix}/{suffix}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return self._json(response)

    def register(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a work. A 409 raises :class:`DuplicateConflict`."""

        response = self._send("POST", "/works", json=payload)
        if response.status_code == 409:
            raise DuplicateConflict(
                f"Work {payload.get('doi')} v{payload.get('version')} is already registered",
                doi=payload.get("doi"),
                version=payload.get("version"),
            )
        self._raise_for_status(response)
        try:
            return response.json()
        except ValueError:
            return {}


def fetch_registered_keys(catalog: CatalogClient, month: str) -> set[str]:
    """Collect every object key the catalog holds for a ``YYYY-MM`` month."""

    keys: set[str] = set()
    offset = 0
    while True:
        page = catalog.list_registered(month, offset=offset)
        keys.update(page.keys)
        logger.debug("Catalog page for %s at offset %d: %d keys", month, offset, len(page.keys))
        if not page.has_more:
            return keys
        if page.next_offset is not None:
            offset = page.next_offset
        else:
            offset += catalog.config.page_size


def _reconcile_individually(
    catalog: CatalogClient, entries: list[RemoteArchiveEntry]
) -> ReconciliationResult:
    result = ReconciliationResult(mode="individual")
    for entry in entries:
        try:
            record = catalog.lookup_key(entry.key)
        except TransportError as exc:
            logger.warning("Could not check catalog status for %s: %s", entry.key, exc)
            result.unresolved.add(entry.key)
            continue
        if record is not None:
            result.processed.add(entry.key)
    return result


def reconcile(
    catalog: CatalogClient,
    entries: Iterable[RemoteArchiveEntry],
    *,
    period_month: str | None,
) -> ReconciliationResult:
    """Work out which candidate keys the catalog already holds.

    With a ``YYYY-MM`` month the catalog's bulk listing is used; otherwise, or when the
    bulk listing fails, every key is looked up on its own. Keys whose lookup fails are
    reported as unresolved and treated as not yet processed.
    """

    candidates = list(entries)
    if not candidates:
        return ReconciliationResult(mode="bulk" if period_month else "individual")

    if period_month:
        try:
            registered = fetch_registered_keys(catalog, period_month)
        except TransportError as exc:
            logger.warning(
                "Bulk catalog listing for %s failed (%s); checking %d keys individually",
                period_month,
                exc,
                len(candidates),
            )
        else:
            processed = {entry.key for entry in candidates if entry.key in registered}
            logger.info(
                "Catalog holds %d of %d candidate archives for %s",
                len(processed),
                len(candidates),
                period_month,
            )
            return ReconciliationResult(processed=processed, mode="bulk")
    else:
        logger.info("No month for this period; checking %d keys individually", len(candidates))

    result = _reconcile_individually(catalog, candidates)
    logger.info(
        "Catalog holds %d of %d candidate archives (%d unresolved)",
        len(result.processed),
        len(candidates),
        len(result.unresolved),
    )
    return result


__all__ = [
    "CatalogClient",
    "ReconciliationResult",
    "RegisteredPage",
    "fetch_registered_keys",
    "reconcile",
]
