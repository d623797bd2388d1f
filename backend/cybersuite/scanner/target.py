# cybersuite/scanner/target.py
"""
Target resolution and SSRF protection.

Every scan starts here: the caller-supplied host or IP literal is validated
and resolved to a single public address. Scans never run against loopback,
RFC 1918, link-local (including the 169.254.169.254 cloud metadata address)
or IPv6 unique-local / link-local space.

Failure here is terminal: no partial scan is ever returned.
"""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# SSRF PROTECTION: Private/Reserved IP Blocklist
# ═══════════════════════════════════════════════════════════════

BLOCKED_V4_NETWORKS = [
    ipaddress.ip_network("127.0.0.0/8"),        # Loopback
    ipaddress.ip_network("10.0.0.0/8"),         # Private (RFC 1918)
    ipaddress.ip_network("172.16.0.0/12"),      # Private (RFC 1918)
    ipaddress.ip_network("192.168.0.0/16"),     # Private (RFC 1918)
    ipaddress.ip_network("169.254.0.0/16"),     # Link-local / cloud metadata
    ipaddress.ip_network("0.0.0.0/8"),          # "This" network, reaches the local host
]

BLOCKED_V6_NETWORKS = [
    ipaddress.ip_network("::1/128"),            # Loopback
    ipaddress.ip_network("fe80::/10"),          # Link-local
    ipaddress.ip_network("fc00::/7"),           # Unique local (fc/fd)
    ipaddress.ip_network("::/128"),             # Unspecified, reaches the local host
]

# Anything made only of digits and dots is meant to be IPv4 and must pass
# strict octet validation.
IPV4_SHAPE_RE = re.compile(r"^[0-9.]+$")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TargetError(Exception):
    """Input or resolution error. Terminal for the whole scan."""

    code = "invalid_target"
    status_code = 400

    def __init__(self, details: str):
        super().__init__(details)
        self.details = details

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.code, "details": self.details}


class TargetRequiredError(TargetError):
    code = "target_required"


class BlockedTargetError(TargetError):
    code = "blocked_target"


class InvalidHostError(TargetError):
    code = "invalid_host"


class UnresolvableHostError(InvalidHostError):
    """DNS gave no answer at all (as opposed to only private answers)."""


# ---------------------------------------------------------------------------
# Target
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Target:
    raw_input: str
    resolved_address: str
    address_family: str                  # "v4" or "v6"
    original_hostname: str

    @property
    def family(self) -> int:
        return 4 if self.address_family == "v4" else 6

    @property
    def is_ip_literal(self) -> bool:
        return parse_ip(self.original_hostname) is not None


def parse_ip(value: str) -> Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]]:
    try:
        return ipaddress.ip_address(value)
    except ValueError:
        return None


def is_private_or_blocked(ip: Optional[str]) -> bool:
    """
    Return True if ip must never be scanned.

    Non-IP strings and malformed IPv4 strings are blocked (fail closed).
    IPv4-mapped IPv6 addresses are judged by the IPv4 address they carry.
    """
    if not ip:
        return True

    addr = parse_ip(ip.strip())
    if addr is None:
        if IPV4_SHAPE_RE.match(ip.strip()):
            logger.debug("Malformed IPv4 %r treated as blocked", ip)
        return True

    if addr.version == 6 and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped

    networks = BLOCKED_V4_NETWORKS if addr.version == 4 else BLOCKED_V6_NETWORKS
    return any(addr in network for network in networks)


def _lookup_all(host: str) -> List[Tuple[int, str]]:
    """Forward lookup returning every (family, address) pair."""
    results = socket.getaddrinfo(host, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    seen = set()
    out: List[Tuple[int, str]] = []
    for family, _type, _proto, _canon, sockaddr in results:
        address = sockaddr[0]
        if address in seen:
            continue
        seen.add(address)
        out.append((4 if family == socket.AF_INET else 6, address))
    return out


def _normalize_host(raw: str) -> str:
    host = raw.strip()
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host.rstrip(".") if not parse_ip(host) else host


def resolve_target(raw: Optional[str]) -> Target:
    """
    Validate and resolve a user-supplied host/IP to a public address.

    Raises TargetRequiredError, BlockedTargetError or InvalidHostError.
    """
    host = _normalize_host(raw or "")
    if not host:
        raise TargetRequiredError("target query param required")

    literal = parse_ip(host)
    if literal is not None:
        if is_private_or_blocked(host):
            logger.warning("SSRF blocked: literal target %s", host)
            raise BlockedTargetError("Private/loopback/link-local targets are not allowed")
        return Target(
            raw_input=raw,
            resolved_address=str(literal),
            address_family="v4" if literal.version == 4 else "v6",
            original_hostname=host,
        )

    if IPV4_SHAPE_RE.match(host):
        # Looks like IPv4 but failed strict octet validation
        logger.warning("SSRF blocked: malformed IPv4 target %s", host)
        raise BlockedTargetError("Malformed IPv4 address")

    try:
        addresses = _lookup_all(host)
    except (socket.gaierror, socket.herror, UnicodeError, OSError):
        raise UnresolvableHostError("Unable to resolve hostname")

    if not addresses:
        raise UnresolvableHostError("Unable to resolve hostname")

    public = [(fam, addr) for fam, addr in addresses if not is_private_or_blocked(addr)]
    chosen = next((a for a in public if a[0] == 4), None) or (public[0] if public else None)
    if chosen is None:
        logger.warning("SSRF blocked: %s resolved only to private addresses %s", host, addresses)
        raise InvalidHostError("Unable to resolve to a public IP")

    family, address = chosen

    # Final guard: never hand out a blocked address
    if is_private_or_blocked(address):
        raise BlockedTargetError("Resolved to a private/loopback/link-local IP")

    return Target(
        raw_input=raw,
        resolved_address=address,
        address_family="v4" if family == 4 else "v6",
        original_hostname=host,
    )
