"""CLI interface for manuscript-ingest."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated

import typer

from manuscript_ingest import __version__
from manuscript_ingest.ingest.content_extractor import ContentExtractor
from manuscript_ingest.ingest.error_handling import ExtractionError
from manuscript_ingest.ingest.format_sniffer import detect_format
from manuscript_ingest.model.extraction_options import DEFAULT_ASSET_FOLDER, ExtractionOptions
from manuscript_ingest.storage.local_store import LocalObjectStore

app = typer.Typer(
    name="manuscript-ingest",
    help="Extract storage-backed HTML from EPUB and DOCX manuscripts.",
    no_args_is_help=True,
)

InputFile = Annotated[
    Path,
    typer.Argument(
        help="Path to the uploaded manuscript (EPUB or DOCX)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
]


@app.command()
def detect(file: InputFile) -> None:
    """Print the container format sniffed from the file contents."""
    typer.echo(detect_format(file.read_bytes()).value)


@app.command()
def extract(
    file: InputFile,
    namespace: Annotated[
        str,
        typer.Option(
            "--namespace",
            help="Asset namespace (e.g., a book id) that scopes the stored images.",
        ),
    ],
    store_dir: Annotated[
        Path,
        typer.Option("--store-dir", help="Directory that receives relocated images"),
    ] = Path("storage"),
    base_url: Annotated[
        str,
        typer.Option("--base-url", help="Public URL prefix under which --store-dir is served"),
    ] = "http://localhost:8000/storage",
    out: Annotated[
        Path | None,
        typer.Option("--out", help="Write the HTML here instead of printing it"),
    ] = None,
    folder: Annotated[
        str,
        typer.Option("--folder", help=f"Storage folder for images (default: {DEFAULT_ASSET_FOLDER})"),
    ] = DEFAULT_ASSET_FOLDER,
    concurrency: Annotated[
        int,
        typer.Option("--concurrency", help="Maximum concurrent uploads (default: 4)"),
    ] = 4,
    cleanup: Annotated[
        bool,
        typer.Option(
            "--cleanup/--no-cleanup",
            help="Delete uploaded images again when extraction fails (default: yes)",
        ),
    ] = True,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the extraction result as JSON"),
    ] = False,
) -> None:
    """
    Extract a manuscript into HTML, relocating its images to --store-dir.

    Examples:

        # Print HTML for a DOCX, storing images under ./storage
        manuscript-ingest extract "Draft.docx" --namespace book-42

        # Write HTML to a file and list relocated images as JSON
        manuscript-ingest extract "Novel.epub" --namespace book-7 --out novel.html --json
    """
    try:
        options = ExtractionOptions.from_cli(folder=folder, concurrency=concurrency, cleanup=cleanup)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    store = LocalObjectStore(store_dir, base_url)
    extractor = ContentExtractor(store, options)

    try:
        content = asyncio.run(extractor.extract(file.read_bytes(), namespace))
    except (ExtractionError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(content.html_content, encoding="utf-8")

    if as_json:
        payload = content.to_dict()
        if out is not None:
            payload.pop("html_content")
            payload["html_path"] = str(out)
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
    elif out is None:
        typer.echo(content.html_content)
    else:
        typer.echo(f"Wrote {out} ({content.format.value}, {len(content.images)} images)")


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"manuscript-ingest version {__version__}")


def version_callback(value: bool) -> None:
    """Version callback for --version flag."""
    if value:
        typer.echo(f"manuscript-ingest version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"),
    ] = "WARNING",
) -> None:
    """
    manuscript-ingest - Turn uploaded EPUB/DOCX manuscripts into storage-backed HTML.

    The container format is sniffed from the archive contents, embedded images
    are relocated to object storage, and every image reference is rewritten to
    its new URL.
    """
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        typer.echo(f"Error: unknown log level '{log_level}'", err=True)
        raise typer.Exit(1)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


if __name__ == "__main__":  # pragma: no cover - executed only via `python -m`
    app()
