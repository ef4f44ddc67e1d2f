"""CLI implementation for fasthandle."""

import base64
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .core.config import Settings
from .core.model import HandleError, InvalidIdentifierError
from .location import LocationResolver

app = typer.Typer(add_completion=False, help="Inspect and read local paths, URLs and s3:// objects.")

_state = {"settings": None}


def iter_sources(ids: list[str]) -> list[str]:
    """Get list of identifiers from the argument list or stdin."""
    ids = ids or []
    if "-" in ids:
        # stdin mode
        return [ln.strip() for ln in sys.stdin if ln.strip()]
    return list(ids)


def _resolver() -> LocationResolver:
    return LocationResolver(_state["settings"] or Settings.from_env())


def _describe(resolver: LocationResolver, identifier: str) -> dict:
    location = resolver.location(identifier)
    exists = location.exists()
    return {
        "identifier": identifier,
        "kind": location.kind,
        "absolute_path": location.absolute_path,
        "exists": exists,
        "is_directory": location.is_directory() if exists else False,
        "length": location.length() if exists else 0,
        "last_modified": location.last_modified() if exists else 0,
    }


@app.callback()
def main(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Log debug output to stderr"),
    cache_listings: bool = typer.Option(False, "--cache-listings", help="Cache directory listings"),
    cache_ttl: Optional[float] = typer.Option(None, "--cache-ttl", min=0, help="Listing cache TTL in seconds"),
):
    """Shared options."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    settings = Settings.from_env()
    if cache_listings:
        settings.cache_listings = True
    if cache_ttl is not None:
        settings.cache_ttl = cache_ttl
    _state["settings"] = settings


@app.command()
def info(
    ids: list[str] = typer.Argument(None, help="Paths, URLs or s3:// identifiers, or '-' for stdin"),
    jsonl: bool = typer.Option(False, "--jsonl", help="Force JSON-lines output"),
):
    """Report existence, type, size and modification time."""
    sources = iter_sources(ids)
    if not sources:
        typer.echo("No identifiers given.", err=True)
        raise typer.Exit(code=1)

    resolver = _resolver()
    results = []
    for src in sources:
        try:
            res = _describe(resolver, src)
        except (HandleError, InvalidIdentifierError, OSError) as e:
            res = {"identifier": src, "exists": False, "error": str(e)}
        results.append(res)

    if len(results) == 1 and not jsonl:
        typer.echo(json.dumps(results[0], indent=2))
    else:
        for res in results:
            typer.echo(json.dumps(res))

    if any(not r["exists"] for r in results):
        raise typer.Exit(code=1)


@app.command()
def ls(
    identifier: str = typer.Argument(..., help="Directory, index URL or s3:// bucket"),
    hide_hidden: bool = typer.Option(False, "--hide-hidden", help="Skip hidden entries"),
):
    """List a directory as JSON (null when it cannot be listed)."""
    names = _resolver().list(identifier, hide_hidden)
    typer.echo(json.dumps(names))
    if names is None:
        raise typer.Exit(code=1)


@app.command()
def fetch(
    identifier: str = typer.Argument(..., help="Path, URL or s3:// identifier"),
    offset: int = typer.Option(0, "--offset", min=0, help="Start offset"),
    length: int = typer.Option(..., "--length", min=1, help="Number of bytes"),
    output: Optional[Path] = typer.Option(None, "-o", "--output", help="Write raw bytes to PATH"),
):
    """Read a byte window; Base64 JSON on stdout or raw bytes to a file."""
    try:
        with _resolver().resolve(identifier) as handle:
            data = handle.fetch(offset, length)
    except (HandleError, InvalidIdentifierError, OSError) as e:
        typer.echo(json.dumps({"identifier": identifier, "success": False, "error": str(e)}))
        raise typer.Exit(code=1)

    if output:
        output.write_bytes(data)
    else:
        typer.echo(json.dumps({
            "identifier": identifier,
            "success": True,
            "offset": offset,
            "length": len(data),
            "data": base64.b64encode(data).decode("ascii"),
        }))


if __name__ == "__main__":
    app()
