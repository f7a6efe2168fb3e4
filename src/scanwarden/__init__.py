"""ScanWarden package."""

__all__ = ["app", "main", "package_version"]


def _patch_subprocess_transport() -> None:
    """
    Patch asyncio subprocess transport to suppress 'Event loop is closed' error.

    Subprocess transports garbage collected after their event loop closed
    raise RuntimeError from ``__del__``; the CLI's one-shot loops hit this.
    """
    import asyncio.base_subprocess

    _original_del = asyncio.base_subprocess.BaseSubprocessTransport.__del__

    def _patched_del(self):
        try:
            _original_del(self)
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise

    asyncio.base_subprocess.BaseSubprocessTransport.__del__ = _patched_del


_patch_subprocess_transport()


def package_version() -> str:
    """Return the installed distribution version."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("scanwarden")
    except PackageNotFoundError:
        return "0.0.0+unknown"


def __getattr__(name: str):
    if name in ("app", "main"):
        from scanwarden.cli import app, main

        return {"app": app, "main": main}[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(__all__)
