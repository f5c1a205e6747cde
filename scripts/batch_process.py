"""CLI for ingesting one or more months or back-content batches of MECA archives.

Example usage:
    python scripts/batch_process.py --month 2025-01 --concurrency 4
    python scripts/batch_process.py --batch 1-10 --max-file-size 500MB --dry-run
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, cast

import typer  # type: ignore[import-not-found]
from pydantic import ValidationError

from rxiv_ingest.config import (
    API_KEY_ENV_VAR,
    CatalogConfig,
    IngestConfig,
    StoreConfig,
    load_config,
)
from rxiv_ingest.data.catalog import CatalogClient
from rxiv_ingest.data.periods import is_future_month, parse_batch_selector, parse_month_selector
from rxiv_ingest.data.store import ObjectStoreClient
from rxiv_ingest.errors import ConfigurationError, TransportError
from rxiv_ingest.pipeline import IngestPipeline, PeriodResult, PipelineSettings, RunSummary
from rxiv_ingest.utils.sizes import format_file_size, parse_file_size

app = typer.Typer(add_completion=False, pretty_exceptions_enable=False)

command = cast(Callable[[Callable[..., object]], Callable[..., object]], app.command())


def build_clients(config: IngestConfig) -> tuple[ObjectStoreClient, CatalogClient]:
    return ObjectStoreClient(config.store), CatalogClient(config.catalog)


def _apply_overrides(
    config: IngestConfig,
    *,
    server: str | None,
    api_url: str | None,
    api_key: str | None,
    requester_pays: bool | None,
) -> IngestConfig:
    store_updates: dict[str, object] = {}
    if server is not None:
        store_updates["server"] = server
    if requester_pays is not None:
        store_updates["requester_pays"] = requester_pays
    catalog_updates: dict[str, object] = {}
    if api_url is not None:
        catalog_updates["api_url"] = api_url
    if api_key:
        catalog_updates["api_key"] = api_key
    store = StoreConfig.model_validate({**config.store.model_dump(), **store_updates})
    catalog = CatalogConfig.model_validate({**config.catalog.model_dump(), **catalog_updates})
    return config.model_copy(update={"store": store, "catalog": catalog})


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=1)


def _echo_dry_run(summary: RunSummary) -> None:
    typer.echo(f"Would process {len(summary.pending)} archives from {summary.period}:")
    for entry in summary.pending:
        typer.echo(
            f"  - {entry.key} ({format_file_size(entry.size_bytes)}, "
            f"{entry.last_modified:%Y-%m-%d})"
        )


def _echo_summary(summary: RunSummary) -> None:
    typer.echo(f"Summary for {summary.period}:")
    typer.echo(f"  Archives found:          {summary.total}")
    typer.echo(f"  Already registered:      {summary.skipped}")
    if summary.filtered_by_size:
        typer.echo(f"  Filtered by size:        {summary.filtered_by_size}")
    typer.echo(f"  Processed successfully:  {summary.succeeded}")
    if summary.duplicates:
        typer.echo(f"    of which duplicates:   {summary.duplicates}")
    typer.echo(f"  Failed:                  {summary.failed}")
    typer.echo(f"  Elapsed:                 {summary.elapsed_seconds:.1f}s")
    for outcome in summary.failures:
        typer.echo(f"  ! {outcome.key}: [{outcome.error_kind or 'unexpected'}] {outcome.error}")


def _echo_rollup(results: list[PeriodResult]) -> None:
    completed = [result for result in results if result.succeeded and result.summary]
    failed_periods = [result for result in results if not result.succeeded]
    typer.echo(f"Periods completed: {len(completed)} of {len(results)}")
    typer.echo(f"  Processed: {sum(r.summary.succeeded for r in completed if r.summary)}")
    typer.echo(f"  Skipped:   {sum(r.summary.skipped for r in completed if r.summary)}")
    typer.echo(f"  Failed:    {sum(r.summary.failed for r in completed if r.summary)}")
    for result in failed_periods:
        typer.echo(f"  ! {result.period}: {result.error}")


@command
def main(  # noqa: PLR0913
    month: Annotated[
        str | None,
        typer.Option(
            "--month",
            "-m",
            help="YYYY-MM, a comma-separated list, or a YYYY-* wildcard. Defaults to every month.",
        ),
    ] = None,
    batch: Annotated[
        str | None,
        typer.Option(
            "--batch",
            "-b",
            help="Back-content batch: a number, an N-M range, or a comma-separated list.",
        ),
    ] = None,
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-l", min=1, help="Maximum number of archives per period."),
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", "-c", min=1, help="Number of archives processed at once."),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Directory for downloads and scratch files."),
    ] = None,
    keep: Annotated[
        bool,
        typer.Option("--keep", help="Keep downloaded archives after processing."),
    ] = False,
    full_extract: Annotated[
        bool,
        typer.Option("--full-extract", help="Extract every archive member, not only the XML."),
    ] = False,
    max_file_size: Annotated[
        str | None,
        typer.Option("--max-file-size", help="Skip archives larger than this (e.g. 100MB, 2GB)."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Process archives even if the catalog already has them."),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="List what would be processed without downloading."),
    ] = False,
    server: Annotated[
        str | None,
        typer.Option("--server", "-s", help="Source server: biorxiv or medrxiv."),
    ] = None,
    api_url: Annotated[
        str | None,
        typer.Option("--api-url", help="Catalog base URL."),
    ] = None,
    api_key: Annotated[
        str | None,
        typer.Option("--api-key", envvar=API_KEY_ENV_VAR, help="Catalog API key."),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help="Path to a YAML config file."),
    ] = None,
    requester_pays: Annotated[
        bool | None,
        typer.Option(
            "--requester-pays/--no-requester-pays",
            help="Send RequestPayer=requester with every bucket request.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """Ingest MECA archives for the selected periods and register them in the catalog."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    if month and batch:
        raise _fail("Use either --month or --batch, not both.")

    try:
        config = _apply_overrides(
            load_config(config_path),
            server=server,
            api_url=api_url,
            api_key=api_key,
            requester_pays=requester_pays,
        )
        months = [] if batch else parse_month_selector(month)
        batches = parse_batch_selector(batch) if batch else []
        max_bytes = parse_file_size(max_file_size) if max_file_size else None
    except (ConfigurationError, ValidationError, FileNotFoundError, TypeError) as exc:
        raise _fail(str(exc)) from exc

    if not dry_run and not config.catalog.api_key:
        raise _fail(f"A catalog API key is required. Pass --api-key or set {API_KEY_ENV_VAR}.")

    future = [value for value in months if is_future_month(value)]
    if future:
        typer.echo(f"Warning: no content can exist yet for {', '.join(future)}", err=True)

    store, catalog = build_clients(config)
    try:
        try:
            catalog.health()
        except TransportError as exc:
            raise _fail(f"Catalog at {config.catalog.api_url} is not healthy: {exc}") from exc

        settings = PipelineSettings.from_config(
            config,
            output_dir=output,
            concurrency=concurrency,
            keep=keep or None,
            full_extract=full_extract or None,
            max_file_size=max_bytes,
            force=force,
            dry_run=dry_run,
            limit=limit,
        )
        typer.echo(
            f"Processing {len(months) or len(batches)} period(s) from s3://{store.bucket} "
            f"with concurrency {settings.concurrency}"
            + (" (dry run)" if dry_run else "")
        )
        pipeline = IngestPipeline(store, catalog, settings)
        results = pipeline.run(months=months, batches=batches)
    finally:
        catalog.close()

    for result in results:
        if result.summary is None:
            typer.echo(f"Period {result.period} failed: {result.error}")
        elif result.summary.dry_run:
            _echo_dry_run(result.summary)
        else:
            _echo_summary(result.summary)
    if len(results) > 1:
        _echo_rollup(results)


if __name__ == "__main__":
    app()
