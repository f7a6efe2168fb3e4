"""``scanwarden doctor`` - pre-flight health check command."""

from __future__ import annotations

from collections import Counter

import typer
from rich.table import Table

from .shared import app, console, require_settings

STATUS_STYLES = {
    "pass": "[green]✓ pass[/green]",
    "warn": "[yellow]! warn[/yellow]",
    "fail": "[red]✗ fail[/red]",
}


@app.command()
def doctor() -> None:
    """Check that the scan tools are installed and the config is usable."""
    from .doctor_checks import (
        check_config_file,
        check_limits,
        check_python_version,
        check_target_policy,
        check_tools,
    )

    settings = require_settings()
    results = [check_python_version(), check_config_file()]
    results.extend(check_tools(settings))
    results.append(check_target_policy(settings))
    results.append(check_limits(settings))

    table = Table(title="ScanWarden Doctor", show_lines=False)
    table.add_column("Check", style="bold")
    table.add_column("Status")
    table.add_column("Detail")
    for result in results:
        table.add_row(result.name, STATUS_STYLES.get(result.status, result.status), result.message)
    console.print(table)

    fixes = [r for r in results if r.fix and r.status != "pass"]
    for result in fixes:
        console.print(f"  [dim]{result.name}:[/dim] {result.fix}")

    counts = Counter(result.status for result in results)
    console.print(
        f"\n  Summary: {counts['pass']} passed, {counts['warn']} warnings, {counts['fail']} failed"
    )
    if counts["fail"]:
        raise typer.Exit(1)
