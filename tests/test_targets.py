"""Tests for target validation."""

import pytest

from scanwarden.errors import InvalidTargetError
from scanwarden.models import TargetKind
from scanwarden.targets import TargetPolicy, validate_target


class TestRejections:
    @pytest.mark.parametrize(
        "raw",
        [
            "example.com;rm -rf /",
            "example.com|nc 1.2.3.4 4444",
            "`id`.example.com",
            "$(whoami).example.com",
            "$HOME",
            "a;b",
        ],
    )
    def test_shell_metacharacters_rejected(self, raw: str) -> None:
        with pytest.raises(InvalidTargetError) as exc_info:
            validate_target(raw)
        assert "not allowed" in exc_info.value.reason

    @pytest.mark.parametrize("raw", ["", "   ", "\t\n"])
    def test_empty_rejected(self, raw: str) -> None:
        with pytest.raises(InvalidTargetError, match="empty"):
            validate_target(raw)

    def test_non_string_rejected(self) -> None:
        with pytest.raises(InvalidTargetError):
            validate_target(None)

    @pytest.mark.parametrize(
        "raw",
        [
            "exa mple.com",
            "http://example.com",
            "example.com/path",
            "host_name.com",
            "1.2.3.4/24",
        ],
    )
    def test_disallowed_characters(self, raw: str) -> None:
        with pytest.raises(InvalidTargetError):
            validate_target(raw)

    @pytest.mark.parametrize(
        "raw",
        [
            "-oN",
            "--script",
            "bad-.example.com",
            "example..com",
            ".example.com",
            "a" * 64 + ".com",
            "host.123",
        ],
    )
    def test_invalid_hostnames(self, raw: str) -> None:
        with pytest.raises(InvalidTargetError):
            validate_target(raw)

    def test_hostname_too_long(self) -> None:
        raw = ".".join(["a" * 60] * 5)  # 304 chars
        with pytest.raises(InvalidTargetError, match="longer than 253"):
            validate_target(raw)

    @pytest.mark.parametrize("raw", ["256.1.1.1", "1.2.3", "01.2.3.4", "1.2.3.4.5"])
    def test_invalid_ipv4(self, raw: str) -> None:
        with pytest.raises(InvalidTargetError, match="IPv4"):
            validate_target(raw)

    @pytest.mark.parametrize("raw", ["1:2:3", "::g", "2001:db8:::1", "fe80::1-2"])
    def test_invalid_ipv6(self, raw: str) -> None:
        with pytest.raises(InvalidTargetError, match="IPv6"):
            validate_target(raw)


class TestAcceptance:
    @pytest.mark.parametrize(
        ("raw", "value", "kind"),
        [
            ("example.com", "example.com", TargetKind.HOSTNAME),
            ("  Example.COM  ", "example.com", TargetKind.HOSTNAME),
            ("example.com.", "example.com", TargetKind.HOSTNAME),
            ("localhost", "localhost", TargetKind.HOSTNAME),
            ("xn--bcher-kva.example", "xn--bcher-kva.example", TargetKind.HOSTNAME),
            ("192.168.1.10", "192.168.1.10", TargetKind.IPV4),
            ("::1", "::1", TargetKind.IPV6),
            ("2001:DB8:0:0:0:0:0:1", "2001:db8::1", TargetKind.IPV6),
        ],
    )
    def test_valid_targets_normalized(self, raw: str, value: str, kind: TargetKind) -> None:
        target = validate_target(raw)
        assert target.value == value
        assert target.kind is kind

    @pytest.mark.parametrize(
        "raw",
        ["Example.COM.", "10.0.0.1", "2001:0DB8::0001", "sub-domain.example.org", "fe80::1"],
    )
    def test_round_trip_is_stable(self, raw: str) -> None:
        first = validate_target(raw)
        assert validate_target(first.value) == first


class TestTargetPolicy:
    def test_denied_network_blocks_ip(self) -> None:
        policy = TargetPolicy.from_cidrs(["10.0.0.0/8", " ", "fd00::/8"])
        with pytest.raises(InvalidTargetError, match="denied network"):
            policy.validate("10.1.2.3")
        with pytest.raises(InvalidTargetError, match="denied network"):
            policy.validate("fd00::5")

    def test_allowed_ip_and_hostnames_pass(self) -> None:
        policy = TargetPolicy.from_cidrs(["10.0.0.0/8"])
        assert policy.validate("192.0.2.1").value == "192.0.2.1"
        assert policy.validate("internal.example").value == "internal.example"

    def test_empty_policy_is_plain_validation(self) -> None:
        assert TargetPolicy().validate("10.0.0.1").kind is TargetKind.IPV4
