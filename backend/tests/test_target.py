"""Tests for the SSRF guard and target resolution."""

import pytest

from cybersuite.scanner.target import (
    BlockedTargetError,
    InvalidHostError,
    Target,
    TargetRequiredError,
    UnresolvableHostError,
    is_private_or_blocked,
    resolve_target,
)


class TestIsPrivateOrBlocked:

    @pytest.mark.parametrize("ip", [
        "127.0.0.1", "127.255.255.254", "10.0.0.1", "172.16.0.1", "172.31.255.255",
        "192.168.1.1", "169.254.169.254", "0.0.0.0",
        "::1", "fe80::1", "fc00::1", "fd12:3456::1", "::",
        "::ffff:127.0.0.1", "::ffff:10.0.0.5",
    ])
    def test_blocked_ranges(self, ip):
        assert is_private_or_blocked(ip) is True

    @pytest.mark.parametrize("ip", ["8.8.8.8", "172.32.0.1", "93.184.216.34", "2001:4860:4860::8888", "::ffff:8.8.8.8"])
    def test_public_addresses(self, ip):
        assert is_private_or_blocked(ip) is False

    @pytest.mark.parametrize("value", [None, "", "example.com", "999.1.1.1", "1.2.3"])
    def test_non_ip_fails_closed(self, value):
        assert is_private_or_blocked(value) is True


class TestResolveTarget:

    def test_missing_target(self):
        with pytest.raises(TargetRequiredError) as exc:
            resolve_target("   ")
        assert exc.value.to_dict() == {
            "ok": False,
            "error": "target_required",
            "details": "target query param required",
        }

    @pytest.mark.parametrize("literal", ["127.0.0.1", "10.1.2.3", "169.254.169.254", "::1", "fd00::1", "[::1]"])
    def test_private_literal_is_blocked(self, literal):
        with pytest.raises(BlockedTargetError) as exc:
            resolve_target(literal)
        assert exc.value.code == "blocked_target"
        assert exc.value.status_code == 400

    def test_malformed_ipv4_is_blocked(self):
        with pytest.raises(BlockedTargetError):
            resolve_target("300.1.1.1")

    def test_public_ipv4_literal(self):
        target = resolve_target("8.8.8.8")
        assert target == Target(
            raw_input="8.8.8.8",
            resolved_address="8.8.8.8",
            address_family="v4",
            original_hostname="8.8.8.8",
        )
        assert target.family == 4
        assert target.is_ip_literal

    def test_bracketed_ipv6_literal(self):
        target = resolve_target("[2001:4860:4860::8888]")
        assert target.resolved_address == "2001:4860:4860::8888"
        assert target.address_family == "v6"
        assert target.family == 6
        assert target.is_ip_literal

    def test_expanded_ipv6_literal_is_still_a_literal(self):
        target = resolve_target("2001:4860:4860:0:0:0:0:8888")
        assert target.resolved_address == "2001:4860:4860::8888"
        assert target.is_ip_literal

    def test_hostname_resolves_to_public(self, fake_dns):
        fake_dns["example.com"] = ["93.184.216.34"]
        target = resolve_target("example.com.")
        assert target.resolved_address == "93.184.216.34"
        assert target.original_hostname == "example.com"
        assert not target.is_ip_literal

    def test_prefers_public_ipv4(self, fake_dns):
        fake_dns["mixed.example"] = ["10.0.0.1", "2001:db8::1", "93.184.216.34"]
        target = resolve_target("mixed.example")
        assert target.resolved_address == "93.184.216.34"
        assert target.address_family == "v4"

    def test_ipv6_only_host(self, fake_dns):
        fake_dns["v6.example"] = ["2606:2800:220:1::1"]
        target = resolve_target("v6.example")
        assert target.address_family == "v6"

    def test_only_private_answers(self, fake_dns):
        fake_dns["internal.example"] = ["10.0.0.1", "fd00::5"]
        with pytest.raises(InvalidHostError) as exc:
            resolve_target("internal.example")
        assert not isinstance(exc.value, UnresolvableHostError)
        assert exc.value.details == "Unable to resolve to a public IP"

    def test_dns_failure(self, fake_dns):
        with pytest.raises(UnresolvableHostError) as exc:
            resolve_target("nope.invalid")
        assert exc.value.code == "invalid_host"
        assert exc.value.details == "Unable to resolve hostname"

    def test_never_returns_blocked_address(self, fake_dns):
        fake_dns["rebind.example"] = ["127.0.0.1", "169.254.169.254"]
        with pytest.raises(InvalidHostError):
            resolve_target("rebind.example")
