"""CLI for reading the manifest of a remote MECA archive without downloading all of it.

Example usage:
    python scripts/extract_manifest.py Current_Content/January_2025/0a1b2c3d.meca
    python scripts/extract_manifest.py Back_Content/Batch_01/x.meca --output manifest.xml
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, cast

import typer  # type: ignore[import-not-found]

from rxiv_ingest.config import StoreConfig
from rxiv_ingest.data.meca import INITIAL_TAIL_BYTES, read_remote_manifest
from rxiv_ingest.data.store import ObjectStoreClient
from rxiv_ingest.errors import IngestError

app = typer.Typer(add_completion=False, pretty_exceptions_enable=False)

command = cast(Callable[[Callable[..., object]], Callable[..., object]], app.command())


def build_store(config: StoreConfig) -> ObjectStoreClient:
    return ObjectStoreClient(config)


@command
def main(
    key: Annotated[str, typer.Argument(help="Object key of the .meca archive.")],
    server: Annotated[
        str,
        typer.Option("--server", "-s", help="Source server: biorxiv or medrxiv."),
    ] = "biorxiv",
    bucket: Annotated[
        str | None,
        typer.Option("--bucket", help="Bucket name; defaults to the server's source bucket."),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the manifest here instead of printing it."),
    ] = None,
    initial_chunk: Annotated[
        int,
        typer.Option("--initial-chunk", min=1, help="Bytes read from the archive tail first."),
    ] = INITIAL_TAIL_BYTES,
    requester_pays: Annotated[
        bool,
        typer.Option("--requester-pays/--no-requester-pays", help="Send RequestPayer=requester."),
    ] = True,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
) -> None:
    """Fetch manifest.xml from a remote archive using ranged reads of its tail."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    try:
        config = StoreConfig(server=server, bucket=bucket, requester_pays=requester_pays)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    store = build_store(config)
    try:
        manifest = read_remote_manifest(store, key, initial_chunk=initial_chunk)
    except IngestError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if output is None:
        typer.echo(manifest.decode("utf-8", errors="replace"))
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(manifest)
    typer.echo(f"Wrote {len(manifest)} bytes to {output}")


if __name__ == "__main__":
    app()
