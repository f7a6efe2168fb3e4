"""``scanwarden serve`` - run the HTTP service."""

import typer

from .shared import app, configure_logging, console, require_settings


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default from config)"),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING..."),
) -> None:
    """Serve the /scan API."""
    import uvicorn

    from scanwarden.api import create_app

    settings = require_settings()
    if host:
        settings.host = host
    if port:
        settings.port = port
    if log_level:
        settings.log_level = log_level
    configure_logging(settings.log_level)

    console.print(
        f"[green]ScanWarden listening on http://{settings.host}:{settings.port}[/green] "
        f"[dim]({settings.max_concurrent} concurrent, queue {settings.max_queue_depth})[/dim]"
    )
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
