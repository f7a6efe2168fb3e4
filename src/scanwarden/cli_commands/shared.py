"""Shared CLI app objects and helpers."""

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from scanwarden.config import Settings, load_settings

app = typer.Typer(
    name="scanwarden",
    help="Scan orchestration service for nmap, nuclei and nikto",
    no_args_is_help=True,
)
console = Console()


def configure_logging(level: str) -> None:
    """Route stdlib logging through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def require_settings() -> Settings:
    """Load settings or exit with a readable error."""
    try:
        return load_settings()
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1) from e
