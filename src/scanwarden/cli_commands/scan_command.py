"""``scanwarden scan`` - run one scan in-process."""

import json
from typing import cast

import typer
from rich.table import Table

from scanwarden.coordinator import ScanCoordinator
from scanwarden.errors import ScanError
from scanwarden.models import (
    MisconfigFinding,
    PortFinding,
    ScanKind,
    ScanRequest,
    ScanResult,
    WebVulnFinding,
)
from scanwarden.utils.async_utils import safe_async_run

from .shared import app, configure_logging, console, require_settings

STATE_STYLES = {"open": "green", "closed": "red", "filtered": "yellow", "unknown": "dim"}
SEVERITY_STYLES = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "cyan"}


def build_result_table(result: ScanResult) -> Table:
    """Render findings as a table shaped for the result's scan kind."""
    title = f"{result.scan_kind.value} · {result.target.value}"
    table = Table(title=title, show_lines=False)
    if result.scan_kind is ScanKind.PORT_SCAN:
        table.add_column("Port", justify="right", style="bold")
        table.add_column("State")
        table.add_column("Service")
        for finding in cast(tuple[PortFinding, ...], result.findings):
            style = STATE_STYLES.get(finding.state.value, "")
            table.add_row(
                str(finding.port), f"[{style}]{finding.state.value}[/]", finding.service or "-"
            )
    elif result.scan_kind is ScanKind.WEB_VULN_SCAN:
        table.add_column("Severity")
        table.add_column("Title", style="bold")
        table.add_column("URL", style="dim")
        for finding in cast(tuple[WebVulnFinding, ...], result.findings):
            style = SEVERITY_STYLES.get(finding.severity.value, "")
            table.add_row(
                f"[{style}]{finding.severity.value.upper()}[/]", finding.title, finding.url
            )
    else:
        table.add_column("Endpoint", style="bold")
        table.add_column("Description")
        for finding in cast(tuple[MisconfigFinding, ...], result.findings):
            table.add_row(finding.endpoint, finding.description)
    return table


def _print_result(result: ScanResult, as_json: bool) -> None:
    if as_json:
        console.print_json(json.dumps(result.to_dict()))
        return
    if result.findings:
        console.print(build_result_table(result))
    else:
        console.print("[yellow]○[/] No findings")
    exit_code = "-" if result.tool_exit_code is None else result.tool_exit_code
    console.print(
        f"[dim]{len(result.findings)} findings · {result.duration_ms} ms · exit {exit_code}"
        f"{' · partial' if result.partial else ''}[/dim]"
    )


@app.command()
def scan(
    target: str = typer.Argument(..., help="Hostname, IPv4 or IPv6 address"),
    scan_type: str = typer.Option("nmap", "--type", "-t", help="Scan type: nmap, nuclei, nikto"),
    timeout: float | None = typer.Option(None, "--timeout", help="Override timeout in seconds"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Run a single scan and print its findings."""
    settings = require_settings()
    configure_logging("DEBUG" if verbose else settings.log_level)
    if timeout is not None:
        if timeout <= 0:
            console.print("[red]--timeout must be positive[/red]")
            raise typer.Exit(1)
        settings.scan_timeout = timeout
        settings.tool_timeouts = {}

    coordinator = ScanCoordinator.from_settings(settings)
    try:
        request = ScanRequest.create(target, scan_type)
        result = safe_async_run(coordinator.execute(request))
    except ScanError as e:
        console.print(f"[red]{e.kind}:[/red] {e.message}")
        partial = getattr(e, "result", None)
        if partial is not None:
            console.print("[yellow]Partial results before the scan stopped:[/yellow]")
            _print_result(partial, as_json)
        raise typer.Exit(1) from e

    _print_result(result, as_json)
