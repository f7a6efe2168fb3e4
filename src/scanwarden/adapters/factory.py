"""Adapter factory helpers."""

from scanwarden.config import Settings
from scanwarden.models import ScanKind

from .base import ToolAdapter
from .nikto import NiktoAdapter
from .nmap import NmapAdapter
from .nuclei import NucleiAdapter


def create_default_adapters(settings: Settings | None = None) -> dict[ScanKind, ToolAdapter]:
    """Return one adapter per scan kind, using configured binary names."""
    settings = settings or Settings()
    adapters: list[ToolAdapter] = [
        NmapAdapter(binary=settings.nmap_path),
        NucleiAdapter(binary=settings.nuclei_path),
        NiktoAdapter(binary=settings.nikto_path),
    ]
    return {adapter.scan_kind: adapter for adapter in adapters}
