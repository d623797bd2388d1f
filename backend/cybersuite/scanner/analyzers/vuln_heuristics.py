# cybersuite/scanner/analyzers/vuln_heuristics.py
"""
TLS vulnerability heuristics.

Maps passively observed TLS configuration to named historical
vulnerability classes. Nothing here is ever exploited: every verdict is
inferred from what the handshakes and headers already showed, so a
"vulnerable" entry means "configuration matches the known precondition",
not "confirmed".

Rules are declarative: one VulnerabilityRule per VulnerabilityClass in
VULNERABILITY_CLASSES. Every rule is evaluated and always reported, so
the absence of a class is explicit. A predicate that raises is logged
and its class is left out of the result.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from cybersuite.scanner.base import BaseAnalyzer, Finding, ScanContext
from cybersuite.utils.ciphers import is_cbc_cipher, is_export_cipher, is_small_block_cipher, uses_hmac

if TYPE_CHECKING:
    from cybersuite.scanner.engines.tls_engine import TlsProfile

logger = logging.getLogger(__name__)

VULNERABLE = "vulnerable"
NOT_VULNERABLE = "not_vulnerable"

# 1.0.1 through 1.0.1f; 1.0.1g carries the fix
HEARTBLEED_VERSION_RE = re.compile(r"^1\.0\.1[a-f]?(?![0-9a-z])", re.IGNORECASE)

TICKETBLEED_SIGNATURE_RE = re.compile(r"big-?ip|\bf5\b", re.IGNORECASE)
TICKETBLEED_TICKET_BYTES = 256


class VulnerabilityClass(str, Enum):
    HEARTBLEED = "Heartbleed"
    CRIME = "CRIME"
    DROWN = "DROWN"
    POODLE = "POODLE"
    BEAST = "BEAST"
    LUCKY13 = "Lucky13"
    TICKETBLEED = "Ticketbleed"
    FALLBACK_SCSV = "Fallback SCSV"
    FREAK = "FREAK"
    SWEET32 = "SWEET32"


@dataclass(frozen=True)
class VulnerabilityRule:
    name: str
    cve_id: Optional[str]
    severity: str
    description: str
    predicate: Callable[["TlsProfile"], bool]


@dataclass
class VulnerabilityFinding:
    name: str
    cve_id: Optional[str]
    status: str
    severity: str
    description: str

    @property
    def is_vulnerable(self) -> bool:
        return self.status == VULNERABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "cve_id": self.cve_id,
            "status": self.status,
            "severity": self.severity,
            "description": self.description,
        }


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def _ciphers(profile: "TlsProfile") -> List[str]:
    return profile.cipher_names


def _heartbleed(profile: "TlsProfile") -> bool:
    return bool(profile.openssl_version and HEARTBLEED_VERSION_RE.match(profile.openssl_version))


def _crime(profile: "TlsProfile") -> bool:
    return profile.compression is True


def _drown(profile: "TlsProfile") -> bool:
    return profile.sslv2_enabled is True


def _poodle(profile: "TlsProfile") -> bool:
    return profile.sslv3_enabled is True


def _beast(profile: "TlsProfile") -> bool:
    if profile.tls_versions.get("TLSv1.0") != "enabled":
        return False
    return any(is_cbc_cipher(c) for c in _ciphers(profile))


def _lucky13(profile: "TlsProfile") -> bool:
    return any(is_cbc_cipher(c) and uses_hmac(c) for c in _ciphers(profile))


def _ticketbleed(profile: "TlsProfile") -> bool:
    if profile.server_software and TICKETBLEED_SIGNATURE_RE.search(profile.server_software):
        return True
    return (profile.session_ticket_length or 0) > TICKETBLEED_TICKET_BYTES


def _fallback_scsv(profile: "TlsProfile") -> bool:
    # Unknown (None) is not evidence of absence
    return profile.fallback_scsv is False


def _freak(profile: "TlsProfile") -> bool:
    return any(is_export_cipher(c) for c in _ciphers(profile))


def _sweet32(profile: "TlsProfile") -> bool:
    return any(is_small_block_cipher(c) for c in _ciphers(profile))


VULNERABILITY_CLASSES: Dict[VulnerabilityClass, VulnerabilityRule] = {
    VulnerabilityClass.HEARTBLEED: VulnerabilityRule(
        name="Heartbleed",
        cve_id="CVE-2014-0160",
        severity="Critical",
        description="OpenSSL heartbeat extension buffer over-read (OpenSSL 1.0.1 to 1.0.1f)",
        predicate=_heartbleed,
    ),
    VulnerabilityClass.CRIME: VulnerabilityRule(
        name="CRIME",
        cve_id="CVE-2012-4929",
        severity="High",
        description="TLS compression allows secrets to leak through compressed length",
        predicate=_crime,
    ),
    VulnerabilityClass.DROWN: VulnerabilityRule(
        name="DROWN",
        cve_id="CVE-2016-0800",
        severity="High",
        description="SSLv2 support allows decryption of TLS sessions sharing the key",
        predicate=_drown,
    ),
    VulnerabilityClass.POODLE: VulnerabilityRule(
        name="POODLE",
        cve_id="CVE-2014-3566",
        severity="High",
        description="SSLv3 CBC padding oracle",
        predicate=_poodle,
    ),
    VulnerabilityClass.BEAST: VulnerabilityRule(
        name="BEAST",
        cve_id="CVE-2011-3389",
        severity="Medium",
        description="TLS 1.0 with CBC ciphers allows chosen-plaintext recovery",
        predicate=_beast,
    ),
    VulnerabilityClass.LUCKY13: VulnerabilityRule(
        name="Lucky13",
        cve_id="CVE-2013-0169",
        severity="Medium",
        description="CBC with HMAC (MAC-then-encrypt) is open to padding timing attacks",
        predicate=_lucky13,
    ),
    VulnerabilityClass.TICKETBLEED: VulnerabilityRule(
        name="Ticketbleed",
        cve_id="CVE-2016-9244",
        severity="Medium",
        description="F5 BIG-IP session ticket handling leaks uninitialized memory",
        predicate=_ticketbleed,
    ),
    VulnerabilityClass.FALLBACK_SCSV: VulnerabilityRule(
        name="Fallback SCSV",
        cve_id=None,
        severity="Medium",
        description="Legacy protocol versions offered without downgrade protection",
        predicate=_fallback_scsv,
    ),
    VulnerabilityClass.FREAK: VulnerabilityRule(
        name="FREAK",
        cve_id="CVE-2015-0204",
        severity="High",
        description="Export-grade cipher suites allow forced key downgrade",
        predicate=_freak,
    ),
    VulnerabilityClass.SWEET32: VulnerabilityRule(
        name="SWEET32",
        cve_id="CVE-2016-2183",
        severity="Medium",
        description="64-bit block ciphers (3DES/DES/IDEA/RC2) are open to birthday attacks",
        predicate=_sweet32,
    ),
}


def detect_vulnerabilities(profile: "TlsProfile") -> List[VulnerabilityFinding]:
    """Evaluate every rule against the profile, in registry order."""
    findings: List[VulnerabilityFinding] = []

    for vuln_class, rule in VULNERABILITY_CLASSES.items():
        try:
            matched = bool(rule.predicate(profile))
        except Exception:
            logger.exception("Vulnerability rule %s failed", vuln_class.value)
            continue

        findings.append(VulnerabilityFinding(
            name=rule.name,
            cve_id=rule.cve_id,
            status=VULNERABLE if matched else NOT_VULNERABLE,
            severity=rule.severity,
            description=rule.description,
        ))

    return findings


class TLSVulnerabilityAnalyzer(BaseAnalyzer):
    """Vulnerable TLS classes from the "tls" engine become website findings."""

    @property
    def name(self) -> str:
        return "tls_vulnerabilities"

    @property
    def required_engines(self) -> List[str]:
        return ["tls"]

    def analyze(self, ctx: ScanContext) -> List[Finding]:
        data = ctx.get_engine_data("tls")
        findings: List[Finding] = []

        for v in data.get("vulnerabilities") or []:
            if v.get("status") != VULNERABLE:
                continue
            label = f"{v['name']} ({v['cve_id']})" if v.get("cve_id") else v["name"]
            findings.append(Finding(
                category="website",
                severity=v["severity"],
                title=f"TLS: {label} preconditions present",
                detail=f"{v['description']}. Inferred from the observed TLS configuration, not exploited.",
                evidence={"tls_vulnerability": v["name"], "cve": v.get("cve_id")},
            ))

        return findings
