"""Tool adapters: one per scan kind."""

from .base import ToolAdapter
from .factory import create_default_adapters
from .nikto import NiktoAdapter
from .nmap import NmapAdapter
from .nuclei import NucleiAdapter

__all__ = [
    "NiktoAdapter",
    "NmapAdapter",
    "NucleiAdapter",
    "ToolAdapter",
    "create_default_adapters",
]
