"""
Configuration management for ScanWarden.

Supports multiple configuration sources in order of priority:
1. Environment variables (highest priority)
2. .env file in the working directory
3. Config file (SCANWARDEN_CONFIG or ~/.scanwarden/config.yml)
4. Default values (lowest priority)
"""

import ipaddress
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from scanwarden.models import ScanKind

logger = logging.getLogger(__name__)

ENV_PREFIX = "SCANWARDEN_"

DUPLICATE_POLICIES = ("reject", "queue")


@dataclass
class Settings:
    """Effective service settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    max_concurrent: int = 4
    per_target_limit: int = 1
    max_queue_depth: int = 16
    duplicate_policy: str = "reject"
    scan_timeout: float = 600.0
    tool_timeouts: dict[str, float] = field(default_factory=dict)
    kill_grace: float = 5.0
    max_output_bytes: int = 16 * 1024 * 1024
    nmap_path: str = "nmap"
    nuclei_path: str = "nuclei"
    nikto_path: str = "nikto"
    deny_networks: list[str] = field(default_factory=list)
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    def timeout_for(self, kind: ScanKind) -> float:
        """Wall-clock budget for one scan of the given kind."""
        return float(self.tool_timeouts.get(kind.value, self.scan_timeout))

    def validate(self) -> "Settings":
        """Reject settings the service cannot run with."""
        for name in ("max_concurrent", "per_target_limit", "max_output_bytes"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.max_queue_depth < 0:
            raise ValueError("max_queue_depth cannot be negative")
        for name in ("scan_timeout", "kill_grace"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        for kind, value in self.tool_timeouts.items():
            if kind not in {member.value for member in ScanKind}:
                raise ValueError(f"tool_timeouts names unknown scan type {kind!r}")
            if float(value) <= 0:
                raise ValueError(f"timeout for {kind} must be positive")
        for cidr in self.deny_networks:
            try:
                ipaddress.ip_network(cidr.strip(), strict=False)
            except ValueError as exc:
                raise ValueError(f"deny_networks entry {cidr!r} is not a network") from exc
        if self.duplicate_policy not in DUPLICATE_POLICIES:
            raise ValueError(
                f"duplicate_policy must be one of {', '.join(DUPLICATE_POLICIES)}, "
                f"got {self.duplicate_policy!r}"
            )
        return self


def load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from .env file."""
    env_vars = {}
    if env_path.exists():
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    # Remove quotes if present
                    value = value.strip().strip("\"'")
                    env_vars[key.strip()] = value
    return env_vars


def get_config_path() -> Path:
    """Return the YAML config path, honouring SCANWARDEN_CONFIG."""
    override = os.environ.get(f"{ENV_PREFIX}CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".scanwarden" / "config.yml"


def load_config_file(config_path: Path | None = None) -> dict[str, Any]:
    """Load settings from the YAML config file."""
    config_path = config_path or get_config_path()
    if not config_path.exists():
        return {}
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a mapping at top level", config_path)
        return {}
    return data


def _coerce(raw: Any, current: Any) -> Any:
    """Convert a config value to the type of the field's current value."""
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, list):
        if isinstance(raw, str):
            return [item.strip() for item in raw.split(",") if item.strip()]
        return [str(item) for item in raw]
    if isinstance(current, dict):
        if isinstance(raw, str):
            pairs = (item.split("=", 1) for item in raw.split(",") if "=" in item)
            return {key.strip(): float(value) for key, value in pairs}
        return {str(key): float(value) for key, value in dict(raw).items()}
    return str(raw)


def _apply(settings: Settings, values: Mapping[str, Any], source: str) -> None:
    known = {f.name for f in fields(Settings)}
    for key, raw in values.items():
        name = key.lower()
        if name not in known:
            continue
        try:
            setattr(settings, name, _coerce(raw, getattr(settings, name)))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid value for %s from %s: %r", name, source, raw)


def _prefixed(values: Mapping[str, str]) -> dict[str, str]:
    return {
        key[len(ENV_PREFIX) :]: value
        for key, value in values.items()
        if key.startswith(ENV_PREFIX) and value != ""
    }


def load_settings(
    config_path: Path | None = None,
    env_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build settings from defaults, config file, .env and the environment."""
    settings = Settings()
    _apply(settings, load_config_file(config_path), "config file")
    _apply(settings, _prefixed(load_env_file(env_path or Path.cwd() / ".env")), ".env")
    _apply(settings, _prefixed(os.environ if environ is None else environ), "environment")
    return settings.validate()
