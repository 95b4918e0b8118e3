"""Command-line uploader for Room Stager."""

from __future__ import annotations

import mimetypes
import os
import webbrowser
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

import httpx
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .errors import PreparationError
from .preparer import prepare_upload

load_dotenv()

console = Console()
app = typer.Typer(help="Stage room photos from the terminal.")

DEFAULT_SERVER = os.getenv("ROOM_STAGER_URL", "http://localhost:8000")
UPLOAD_ERROR_MESSAGE = "Error uploading image. Please try again."


def _guess_type(path: Path) -> str:
    return mimetypes.guess_type(path.name)[0] or "application/octet-stream"


def result_url(server: str, original: str, staged: str) -> str:
    return f"{server.rstrip('/')}/result?{urlencode({'original': original, 'staged': staged})}"


@app.command()
def prepare(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the prepared file here."),
) -> None:
    """Run only the size-reduction step and report what would be uploaded."""
    data = path.read_bytes()
    try:
        prepared = prepare_upload(data, path.name, _guess_type(path))
    except PreparationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    table = Table(show_header=False)
    table.add_row("File", prepared.filename)
    table.add_row("Type", prepared.content_type)
    table.add_row("Size", f"{len(data):,} -> {prepared.size:,} bytes")
    table.add_row("Re-encoded", "yes" if prepared.transformed else "no")
    console.print(table)

    if output:
        output.write_bytes(prepared.data)
        console.print(f"[green]Wrote {output}[/green]")


@app.command()
def stage(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    server: str = typer.Option(DEFAULT_SERVER, "--server", "-s", help="Base URL of the Room Stager app."),
    open_browser: bool = typer.Option(False, "--open", help="Open the before/after page when done."),
) -> None:
    """Prepare PATH, send it for staging and print the result links."""
    try:
        prepared = prepare_upload(path.read_bytes(), path.name, _guess_type(path))
        with console.status("Staging room..."):
            response = httpx.post(
                f"{server.rstrip('/')}/api/stage-room",
                files={"roomImage": (prepared.filename, prepared.data, prepared.content_type)},
                timeout=None,
            )
        response.raise_for_status()
        data = response.json()
        link = result_url(server, data["originalImageUrl"], data["stagedImageUrl"])
    except (PreparationError, httpx.HTTPError, ValueError, KeyError) as exc:
        console.print(f"[red]{UPLOAD_ERROR_MESSAGE}[/red]")
        console.print(f"[dim]{exc}[/dim]")
        raise typer.Exit(1)

    console.print(f"[bold]Original:[/bold] {data['originalImageUrl']}")
    console.print(f"[bold]Staged:[/bold]   {data['stagedImageUrl']}")
    console.print(f"[dim]{data.get('description', '')}[/dim]")
    console.print(f"[cyan]{link}[/cyan]")
    if open_browser:
        webbrowser.open(link)


if __name__ == "__main__":
    app()
