"""CLI for downloading the MECA archive of one registered work.

Example usage:
    python scripts/download_work.py 10.1101/2024.01.05.574321
    python scripts/download_work.py 10.1101/2020.03.01.20029132v2 --output downloads/
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, cast

import typer  # type: ignore[import-not-found]

from rxiv_ingest.config import CatalogConfig, StoreConfig
from rxiv_ingest.data.catalog import CatalogClient
from rxiv_ingest.data.doi import extract_doi_from_url, is_valid_doi
from rxiv_ingest.data.store import ObjectStoreClient
from rxiv_ingest.errors import TransportError

app = typer.Typer(add_completion=False, pretty_exceptions_enable=False)

command = cast(Callable[[Callable[..., object]], Callable[..., object]], app.command())

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def build_client(api_url: str) -> CatalogClient:
    return CatalogClient(CatalogConfig(api_url=api_url))


def build_store(config: StoreConfig) -> ObjectStoreClient:
    return ObjectStoreClient(config)


def archive_file_name(doi: str) -> str:
    """``10.1101/2024.01.05.574321`` becomes ``10.1101_2024.01.05.574321.meca``."""
    return f"{_UNSAFE_FILENAME_CHARS.sub('_', doi)}.meca"


@command
def main(
    identifier: Annotated[
        str,
        typer.Argument(help="DOI (optionally with a vN suffix) or a bioRxiv/medRxiv/doi.org URL."),
    ],
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Directory the archive is written to."),
    ] = Path("downloads"),
    api_url: Annotated[
        str,
        typer.Option("--api-url", help="Catalog base URL."),
    ] = CatalogConfig().api_url,
    server: Annotated[
        str | None,
        typer.Option("--server", "-s", help="Source server; defaults to the work's server."),
    ] = None,
    requester_pays: Annotated[
        bool,
        typer.Option("--requester-pays/--no-requester-pays", help="Send RequestPayer=requester."),
    ] = True,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
) -> None:
    """Look up a work in the catalog and download its archive from the source bucket."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    doi = extract_doi_from_url(identifier)
    if doi is None or not is_valid_doi(doi):
        typer.echo(f"Error: {identifier!r} is not a bioRxiv/medRxiv DOI or URL.", err=True)
        raise typer.Exit(code=1)

    client = build_client(api_url)
    try:
        work = client.get_work(doi)
    except TransportError as exc:
        typer.echo(f"Error: could not fetch {doi}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        client.close()

    if work is None:
        typer.echo(f"Work {doi} is not in the catalog.", err=True)
        raise typer.Exit(code=1)
    key = work.get("s3Key")
    if not key:
        typer.echo(f"Work {doi} has no archive key in the catalog.", err=True)
        raise typer.Exit(code=1)

    try:
        config = StoreConfig(
            server=server or work.get("server") or "biorxiv", requester_pays=requester_pays
        )
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"Found {work.get('title') or doi} at s3://{config.bucket_name()}/{key}")
    target = output / archive_file_name(doi)
    try:
        build_store(config).download(key, target)
    except TransportError as exc:
        typer.echo(f"Error: download failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Wrote {target}")


if __name__ == "__main__":
    app()
