"""HTTP service exposing the scan coordinator."""

from .app import create_app

__all__ = ["create_app"]
