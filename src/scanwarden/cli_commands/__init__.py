"""CLI command modules; importing them registers their commands on ``shared.app``."""
