"""Target validation.

Every target passes through :func:`validate_target` before it can reach a
subprocess argument vector. Only ``[A-Za-z0-9.:-]`` survives, hostname
labels may not start with ``-`` (so a target is never read as a tool
option), and the result is normalized so validating it again is a no-op.
"""

import ipaddress
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from scanwarden.errors import InvalidTargetError
from scanwarden.models import TargetKind, ValidatedTarget

MAX_HOSTNAME_LENGTH = 253
MAX_LABEL_LENGTH = 63

_ALLOWED_CHARS = re.compile(r"[A-Za-z0-9.:\-]+")
_LABEL = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")
_DOTTED_NUMERIC = re.compile(r"^[0-9.]+$")


def validate_target(raw: object) -> ValidatedTarget:
    """Normalize and classify a raw target string.

    Raises:
        InvalidTargetError: when the input is empty, carries characters
            outside the allowed set, or is not a valid IPv4 address, IPv6
            address or DNS hostname.
    """
    if not isinstance(raw, str):
        raise InvalidTargetError("target must be a string")
    candidate = raw.strip()
    if not candidate:
        raise InvalidTargetError("target is empty")

    if not _ALLOWED_CHARS.fullmatch(candidate):
        bad = next(ch for ch in candidate if not _ALLOWED_CHARS.fullmatch(ch))
        raise InvalidTargetError(f"character {bad!r} is not allowed", target=candidate)

    if ":" in candidate:
        return _validate_ipv6(candidate)
    if _DOTTED_NUMERIC.match(candidate):
        return _validate_ipv4(candidate)
    return _validate_hostname(candidate)


def _validate_ipv4(candidate: str) -> ValidatedTarget:
    try:
        address = ipaddress.IPv4Address(candidate)
    except ValueError as exc:
        raise InvalidTargetError("not a valid IPv4 address", target=candidate) from exc
    return ValidatedTarget(value=str(address), kind=TargetKind.IPV4)


def _validate_ipv6(candidate: str) -> ValidatedTarget:
    try:
        address = ipaddress.IPv6Address(candidate)
    except ValueError as exc:
        raise InvalidTargetError("not a valid IPv6 address", target=candidate) from exc
    return ValidatedTarget(value=address.compressed, kind=TargetKind.IPV6)


def _validate_hostname(candidate: str) -> ValidatedTarget:
    hostname = candidate.lower()
    if hostname.endswith("."):
        hostname = hostname[:-1]
    if not hostname:
        raise InvalidTargetError("hostname is empty", target=candidate)
    if len(hostname) > MAX_HOSTNAME_LENGTH:
        raise InvalidTargetError(
            f"hostname longer than {MAX_HOSTNAME_LENGTH} characters", target=candidate
        )

    labels = hostname.split(".")
    for label in labels:
        if not label:
            raise InvalidTargetError("hostname has an empty label", target=candidate)
        if len(label) > MAX_LABEL_LENGTH:
            raise InvalidTargetError(
                f"label {label!r} longer than {MAX_LABEL_LENGTH} characters", target=candidate
            )
        if not _LABEL.match(label):
            raise InvalidTargetError(f"label {label!r} is not a valid DNS label", target=candidate)
    if labels[-1].isdigit():
        raise InvalidTargetError("top-level label cannot be all-numeric", target=candidate)

    return ValidatedTarget(value=hostname, kind=TargetKind.HOSTNAME)


@dataclass
class TargetPolicy:
    """Deny-list of networks that must never be scanned.

    Hostnames are not resolved here, so the policy only applies to literal
    IP targets.
    """

    denied: list[ipaddress.IPv4Network | ipaddress.IPv6Network] = field(default_factory=list)

    @classmethod
    def from_cidrs(cls, cidrs: Iterable[str]) -> "TargetPolicy":
        networks = []
        for cidr in cidrs:
            cidr = cidr.strip()
            if cidr:
                networks.append(ipaddress.ip_network(cidr, strict=False))
        return cls(denied=networks)

    def check(self, target: ValidatedTarget) -> ValidatedTarget:
        """Return the target unchanged or raise ``InvalidTargetError``."""
        if target.kind is TargetKind.HOSTNAME or not self.denied:
            return target
        address = ipaddress.ip_address(target.value)
        for network in self.denied:
            if address.version == network.version and address in network:
                raise InvalidTargetError(
                    f"address is inside denied network {network}", target=target.value
                )
        return target

    def validate(self, raw: object) -> ValidatedTarget:
        return self.check(validate_target(raw))
