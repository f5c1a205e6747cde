"""CLI for fetching one registered work from the catalog.

Example usage:
    python scripts/fetch_work.py 10.1101/2024.01.05.574321v2
    python scripts/fetch_work.py https://www.biorxiv.org/content/10.1101/2024.01.05.574321v1.full
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Annotated, cast

import typer  # type: ignore[import-not-found]

from rxiv_ingest.config import CatalogConfig
from rxiv_ingest.data.catalog import CatalogClient
from rxiv_ingest.data.doi import extract_doi_from_url, is_valid_doi
from rxiv_ingest.errors import TransportError

app = typer.Typer(add_completion=False, pretty_exceptions_enable=False)

command = cast(Callable[[Callable[..., object]], Callable[..., object]], app.command())


def build_client(api_url: str) -> CatalogClient:
    return CatalogClient(CatalogConfig(api_url=api_url))


@command
def main(
    identifier: Annotated[
        str,
        typer.Argument(help="DOI (optionally with a vN suffix) or a bioRxiv/medRxiv/doi.org URL."),
    ],
    api_url: Annotated[
        str,
        typer.Option("--api-url", help="Catalog base URL."),
    ] = CatalogConfig().api_url,
) -> None:
    """Print the catalog record for a DOI as JSON."""

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
    typer.echo(json.dumps(work, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    app()
