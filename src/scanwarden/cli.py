"""ScanWarden CLI."""

from scanwarden import package_version
from scanwarden.cli_commands import doctor_command, scan_command, serve_command  # noqa: F401
from scanwarden.cli_commands.shared import app, console


@app.command()
def version() -> None:
    """Show the installed ScanWarden version."""
    console.print(f"ScanWarden {package_version()}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
