"""Batch ingestion: list a period's archives, skip registered ones, process the rest.

Each archive goes through download, extraction, metadata parsing, registration and
cleanup on a worker thread. A failure is recorded on that archive's outcome and never
stops the other workers or the run.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import DEFAULT_SELECTIVE_THRESHOLD_BYTES, IngestConfig
from .data.catalog import CatalogClient, reconcile
from .data.folders import FolderReference, resolve_folder
from .data.jats import ExtractedMetadata, parse_jats_file
from .data.listing import DEFAULT_EXTENSION, RemoteArchiveEntry, list_archives
from .data.meca import extract_archive
from .data.store import ObjectStoreClient
from .errors import DuplicateConflict, ErrorKind, IngestError
from .types import Server
from .utils.cleanup import cleanup_after_attempt

logger = logging.getLogger(__name__)

SCRATCH_DIR_NAME = ".scratch"


@dataclass(slots=True)
class PipelineSettings:
    output_dir: Path
    concurrency: int = 1
    keep: bool = False
    full_extract: bool = False
    max_file_size: int | None = None
    selective_threshold_bytes: int = DEFAULT_SELECTIVE_THRESHOLD_BYTES
    force: bool = False
    dry_run: bool = False
    limit: int | None = None
    server: Server = Server.BIORXIV
    extension: str = DEFAULT_EXTENSION

    @classmethod
    def from_config(cls, config: IngestConfig, **overrides: Any) -> PipelineSettings:
        """Build settings from a loaded config; *overrides* win over file values."""

        pipeline = config.pipeline
        values: dict[str, Any] = {
            "output_dir": pipeline.output_dir,
            "concurrency": pipeline.concurrency,
            "keep": pipeline.keep,
            "full_extract": pipeline.full_extract,
            "max_file_size": pipeline.max_file_size_bytes(),
            "selective_threshold_bytes": pipeline.selective_threshold_bytes,
            "server": config.store.server,
            "extension": pipeline.archive_extension,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


@dataclass(slots=True)
class ProcessingOutcome:
    """Result of one attempt to ingest one archive."""

    key: str
    succeeded: bool
    error: str | None = None
    error_kind: ErrorKind | None = None
    duplicate: bool = False
    doi: str | None = None
    version: int | None = None


@dataclass(slots=True)
class RunSummary:
    period: str
    total: int = 0
    filtered_by_size: int = 0
    skipped: int = 0
    succeeded: int = 0
    failed: int = 0
    duplicates: int = 0
    unresolved: int = 0
    elapsed_seconds: float = 0.0
    dry_run: bool = False
    pending: list[RemoteArchiveEntry] = field(default_factory=list)
    outcomes: list[ProcessingOutcome] = field(default_factory=list)

    @property
    def failures(self) -> list[ProcessingOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]


@dataclass(slots=True)
class PeriodResult:
    period: str
    succeeded: bool
    summary: RunSummary | None = None
    error: str | None = None


def _iso_midnight(day: str) -> str:
    return f"{day}T00:00:00.000Z"


def build_registration_payload(
    metadata: ExtractedMetadata,
    entry: RemoteArchiveEntry,
    *,
    server: Server,
    file_size: int,
) -> dict[str, Any]:
    """Request body for ``POST /works``; optional fields are left out when unknown."""

    payload: dict[str, Any] = {
        "doi": metadata.doi,
        "version": metadata.version_number,
        "receivedDate": _iso_midnight(metadata.received_date),
        "batch": entry.batch_label,
        "server": str(server),
        "s3Key": entry.key,
        "fileSize": file_size,
    }
    if metadata.accepted_date:
        payload["acceptedDate"] = _iso_midnight(metadata.accepted_date)
    if metadata.title:
        payload["title"] = metadata.title
    return payload


class IngestPipeline:
    """Drive ingestion of one or more periods against a store and a catalog."""

    def __init__(
        self,
        store: ObjectStoreClient,
        catalog: CatalogClient,
        settings: PipelineSettings,
    ) -> None:
        if settings.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.store = store
        self.catalog = catalog
        self.settings = settings

    def _local_name(self, entry: RemoteArchiveEntry) -> str:
        digest = hashlib.sha1(entry.key.encode("utf-8")).hexdigest()[:12]
        return f"{Path(entry.file_name).stem}-{digest}"

    def archive_path_for(self, entry: RemoteArchiveEntry) -> Path:
        """Download target; keys sharing a file name in different folders get distinct paths."""

        suffix = Path(entry.file_name).suffix
        return self.settings.output_dir / f"{self._local_name(entry)}{suffix}"

    def scratch_dir_for(self, entry: RemoteArchiveEntry) -> Path:
        """Per-key extraction directory; distinct keys never share one."""

        return self.settings.output_dir / SCRATCH_DIR_NAME / self._local_name(entry)

    def _use_selective(self, size_bytes: int) -> bool:
        if self.settings.full_extract:
            return False
        return size_bytes < self.settings.selective_threshold_bytes

    def process_entry(self, entry: RemoteArchiveEntry) -> ProcessingOutcome:
        archive_path = self.archive_path_for(entry)
        scratch_dir = self.scratch_dir_for(entry)
        metadata: ExtractedMetadata | None = None
        try:
            logger.info("Processing %s", entry.key)
            self.store.download(entry.key, archive_path)
            file_size = archive_path.stat().st_size
            extracted = extract_archive(
                archive_path, scratch_dir, selective=self._use_selective(file_size)
            )
            metadata = parse_jats_file(extracted.jats_path)
            payload = build_registration_payload(
                metadata, entry, server=self.settings.server, file_size=file_size
            )
            self.catalog.register(payload)
        except DuplicateConflict as exc:
            logger.info("Already registered: %s (%s)", entry.key, exc)
            return ProcessingOutcome(
                key=entry.key,
                succeeded=True,
                duplicate=True,
                doi=metadata.doi if metadata else exc.doi,
                version=metadata.version_number if metadata else exc.version,
            )
        except IngestError as exc:
            logger.error("Failed to process %s: %s", entry.key, exc)
            return ProcessingOutcome(
                key=entry.key, succeeded=False, error=str(exc), error_kind=exc.kind
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error processing %s", entry.key)
            return ProcessingOutcome(key=entry.key, succeeded=False, error=repr(exc))
        finally:
            cleanup_after_attempt(archive_path, scratch_dir, keep=self.settings.keep)

        logger.info("Registered %s v%d from %s", metadata.doi, metadata.version_number, entry.key)
        return ProcessingOutcome(
            key=entry.key,
            succeeded=True,
            doi=metadata.doi,
            version=metadata.version_number,
        )

    def process_entries(self, entries: Iterable[RemoteArchiveEntry]) -> list[ProcessingOutcome]:
        """Process *entries* on a bounded pool; outcomes come back in input order."""

        pending = list(entries)
        if not pending:
            return []
        self.settings.output_dir.mkdir(parents=True, exist_ok=True)

        results: dict[str, ProcessingOutcome] = {}
        if self.settings.concurrency == 1:
            for entry in pending:
                results[entry.key] = self.process_entry(entry)
        else:
            with ThreadPoolExecutor(max_workers=self.settings.concurrency) as executor:
                futures = {executor.submit(self.process_entry, entry): entry for entry in pending}
                for future in as_completed(futures):
                    entry = futures[future]
                    results[entry.key] = future.result()
        return [results[entry.key] for entry in pending]

    def run_period(self, folder: FolderReference) -> RunSummary:
        settings = self.settings
        started = time.monotonic()
        summary = RunSummary(period=folder.batch_label, dry_run=settings.dry_run)

        logger.info("Listing archives under s3://%s/%s", self.store.bucket, folder.prefix)
        entries = list_archives(
            self.store,
            folder.prefix,
            batch_label=folder.batch_label,
            extension=settings.extension,
            limit=settings.limit,
        )
        summary.total = len(entries)

        if settings.force or not entries:
            candidates = entries
        else:
            reconciliation = reconcile(self.catalog, entries, period_month=folder.period_month)
            candidates = [entry for entry in entries if not reconciliation.is_processed(entry.key)]
            summary.unresolved = len(reconciliation.unresolved)
        summary.skipped = len(entries) - len(candidates)

        if settings.max_file_size is not None:
            within = [entry for entry in candidates if entry.size_bytes <= settings.max_file_size]
            summary.filtered_by_size = len(candidates) - len(within)
            candidates = within

        summary.pending = candidates
        if settings.dry_run:
            logger.info("Dry run: %d archives would be processed", len(candidates))
            summary.elapsed_seconds = time.monotonic() - started
            return summary

        logger.info(
            "Processing %d archives from %s with concurrency %d",
            len(candidates),
            folder.batch_label,
            settings.concurrency,
        )
        summary.outcomes = self.process_entries(candidates)
        for outcome in summary.outcomes:
            if not outcome.succeeded:
                summary.failed += 1
                continue
            summary.succeeded += 1
            if outcome.duplicate:
                summary.duplicates += 1
        summary.elapsed_seconds = time.monotonic() - started
        logger.info(
            "Finished %s: %d succeeded, %d failed, %d skipped, %d filtered by size in %.1fs",
            folder.batch_label,
            summary.succeeded,
            summary.failed,
            summary.skipped,
            summary.filtered_by_size,
            summary.elapsed_seconds,
        )
        return summary

    def _run_selection(
        self, label: str, *, month: str | None = None, batch: str | None = None
    ) -> PeriodResult:
        try:
            folder = resolve_folder(month=month, batch=batch, server=self.settings.server)
            summary = self.run_period(folder)
        except IngestError as exc:
            logger.error("Period %s failed: %s", label, exc)
            return PeriodResult(period=label, succeeded=False, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error in period %s", label)
            return PeriodResult(period=label, succeeded=False, error=repr(exc))
        return PeriodResult(period=label, succeeded=True, summary=summary)

    def run(
        self,
        *,
        months: Iterable[str] = (),
        batches: Iterable[str] = (),
    ) -> list[PeriodResult]:
        """Process several periods one after another; a failing period does not stop the rest."""

        results = [self._run_selection(month, month=month) for month in months]
        results.extend(self._run_selection(batch, batch=batch) for batch in batches)
        return results


__all__ = [
    "IngestPipeline",
    "PeriodResult",
    "PipelineSettings",
    "ProcessingOutcome",
    "RunSummary",
    "build_registration_payload",
]
