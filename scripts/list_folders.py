"""CLI for listing the month and batch folders of a source bucket."""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, cast

import typer  # type: ignore[import-not-found]

from rxiv_ingest.config import StoreConfig
from rxiv_ingest.data.listing import list_content_folders
from rxiv_ingest.data.store import ObjectStoreClient
from rxiv_ingest.errors import TransportError
from rxiv_ingest.types import ContentEra

app = typer.Typer(add_completion=False, pretty_exceptions_enable=False)

command = cast(Callable[[Callable[..., object]], Callable[..., object]], app.command())


def build_store(config: StoreConfig) -> ObjectStoreClient:
    return ObjectStoreClient(config)


@command
def main(
    server: Annotated[
        str,
        typer.Option("--server", "-s", help="Source server: biorxiv or medrxiv."),
    ] = "biorxiv",
    requester_pays: Annotated[
        bool,
        typer.Option("--requester-pays/--no-requester-pays", help="Send RequestPayer=requester."),
    ] = True,
) -> None:
    """Print the Current_Content months (newest first) and Back_Content batches."""

    try:
        config = StoreConfig(server=server, requester_pays=requester_pays)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    try:
        folders = list_content_folders(build_store(config))
    except TransportError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"Current_Content ({len(folders[ContentEra.CURRENT])} months):")
    for name in folders[ContentEra.CURRENT]:
        typer.echo(f"  {name}")
    typer.echo(f"Back_Content ({len(folders[ContentEra.BACK])} batches):")
    for name in folders[ContentEra.BACK]:
        typer.echo(f"  {name}")


if __name__ == "__main__":
    app()
