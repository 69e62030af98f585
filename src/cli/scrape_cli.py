"""Typer-based command line for scraping pages and running the queue worker."""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from pathlib import Path

_project_root = Path(__file__).resolve().parent.parent.parent
from dotenv import load_dotenv

load_dotenv(_project_root / ".env")
load_dotenv(_project_root / ".env.local")

import asyncio
import json

import typer
from pydantic import ValidationError

from src.db.repository import get_page_metadata
from src.models.scrape_models import ScrapeMode, ScrapeRequest
from src.services.scrape_errors import ScrapeError
from src.services.scrape_orchestrator import get_scrape_orchestrator
from src.services.scrape_queue import get_scrape_queue
from src.services.storage_key import canonicalize_url
from src.worker import main as worker_main

app = typer.Typer(help="Render pages in a remote browser and store what they show.")


def _build_request(url: str, idle: int | None, lang: str | None, mode: str | None) -> ScrapeRequest:
    """Validate CLI options into a ScrapeRequest, exiting with code 2 when invalid."""
    try:
        return ScrapeRequest.model_validate(
            {"url": url, "idle": idle, "lang": lang, "mode": mode}
        )
    except ValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        typer.echo(f"✗ Invalid request: {messages}", err=True)
        raise typer.Exit(2)


@app.command()
def scrape(
    url: str = typer.Argument(..., help="Page to scrape"),
    idle: int | None = typer.Option(None, help="Network idle window in milliseconds"),
    lang: str | None = typer.Option(None, help="Language tag recorded with the page"),
    mode: str | None = typer.Option(
        None, help=f"What to capture: {', '.join(m.value for m in ScrapeMode)}"
    ),
):
    """Scrape a page now and print the outcome as JSON."""
    request = _build_request(url, idle, lang, mode)
    typer.echo(f"Scraping {request.url} ({request.mode.value})...")
    try:
        outcome = asyncio.run(get_scrape_orchestrator().scrape(request))
    except ScrapeError as e:
        typer.echo(f"✗ Scrape failed at {e.stage} stage: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(json.dumps(outcome.model_dump(by_alias=True), indent=2))


@app.command()
def enqueue(
    url: str = typer.Argument(..., help="Page to scrape"),
    idle: int | None = typer.Option(None, help="Network idle window in milliseconds"),
    lang: str | None = typer.Option(None, help="Language tag recorded with the page"),
    mode: str | None = typer.Option(None, help="What to capture: html, screenshot or all"),
):
    """Send a scrape request to the queue for the worker."""
    request = _build_request(url, idle, lang, mode)
    try:
        message_id = asyncio.run(get_scrape_queue().send(request))
    except Exception as e:
        typer.echo(f"✗ Failed to send message to queue: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ Queued {request.url} (message {message_id})")


@app.command()
def show(url: str = typer.Argument(..., help="Page URL as it was scraped")):
    """Print the stored metadata row for a page."""
    try:
        canonical = canonicalize_url(url).url
    except ValueError as e:
        typer.echo(f"✗ Invalid URL: {e}", err=True)
        raise typer.Exit(2)

    record = get_page_metadata(canonical)
    if record is None:
        typer.echo(f"No metadata recorded for {canonical}", err=True)
        raise typer.Exit(1)
    typer.echo(record.model_dump_json(indent=2))


@app.command()
def worker():
    """Run the queue worker until interrupted."""
    worker_main()


if __name__ == "__main__":
    app()
