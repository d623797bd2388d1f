# cybersuite/scanner/engines/tls_engine.py
"""
TLS configuration engine.

Uses the stdlib ssl and socket modules for the handshakes and
`cryptography` to parse the peer certificate.

What this engine collects:
    - Which protocol versions complete a handshake (TLS 1.3 down to 1.0,
      SSLv3 when the local OpenSSL can still offer it)
    - The cipher negotiated in every successful handshake
    - TLS compression on the unpinned handshake
    - Leaf certificate: issuer, subject CN, expiry, SANs, validity
    - Passive signals for the vulnerability heuristics (OpenSSL version
      from the Server header, server software, downgrade protection)

Each version is tested with a context pinned min = max = version and the
OpenSSL security level lowered to 0, otherwise a modern local OpenSSL
refuses to offer TLS 1.0/1.1 at all and every legacy version would look
disabled.

Output data structure (TlsProfile.to_dict(), stored in EngineResult.data):
    {
        "hostname": "example.com",
        "port": 443,
        "tls_versions": {"TLSv1.3": "enabled", "TLSv1.2": "enabled",
                         "TLSv1.1": "disabled", "TLSv1.0": "disabled"},
        "cipher_suites": [
            {"name": "TLS_AES_256_GCM_SHA384", "strength": "strong",
             "forward_secrecy": true, "version": "TLSv1.3"}
        ],
        "certificate": {"valid": true, "issuer": "Let's Encrypt", "subject": "example.com",
                        "expires_on": "2026-01-01T00:00:00+00:00", "days_remaining": 74,
                        "alt_names": ["example.com", "www.example.com"]},
        "vulnerabilities": [{"name": "Heartbleed", "status": "not_vulnerable", ...}],
        "compression": false,
        "sslv2_enabled": false,
        "sslv3_enabled": false,
        "openssl_version": null,
        "server_software": "nginx",
        "session_ticket_length": null,
        "fallback_scsv": true,
        "error": null
    }
"""

from __future__ import annotations

import logging
import re
import socket
import ssl
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

from cybersuite.scanner.analyzers.vuln_heuristics import VulnerabilityFinding, detect_vulnerabilities
from cybersuite.scanner.base import BaseEngine, EngineResult, ScanContext
from cybersuite.utils.ciphers import (  # noqa: F401  re-exported
    classify_cipher_suite,
    has_forward_secrecy,
    is_cbc_cipher,
    is_export_cipher,
    is_small_block_cipher,
    uses_hmac,
)

logger = logging.getLogger(__name__)

HANDSHAKE_TIMEOUT = 5

# Newest first; also the order of the tls_versions map
TLS_VERSIONS = {
    "TLSv1.3": ssl.TLSVersion.TLSv1_3,
    "TLSv1.2": ssl.TLSVersion.TLSv1_2,
    "TLSv1.1": ssl.TLSVersion.TLSv1_1,
    "TLSv1.0": ssl.TLSVersion.TLSv1,
}

LEGACY_CIPHERS = "DEFAULT:@SECLEVEL=0"

OPENSSL_VERSION_RE = re.compile(r"OpenSSL/([0-9][0-9a-z.\-]*)", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Passive signals
# ---------------------------------------------------------------------------

def parse_openssl_version(server_header: Optional[str]) -> Optional[str]:
    """OpenSSL/1.0.1e in a Server header → "1.0.1e"."""
    if not server_header:
        return None
    m = OPENSSL_VERSION_RE.search(server_header)
    return m.group(1).rstrip(".-") if m else None


def infer_fallback_scsv(tls_versions: Dict[str, str]) -> Optional[bool]:
    """
    Downgrade protection signal.

    True when TLS 1.3 is enabled (its downgrade sentinel covers fallback)
    or a single version is offered (nothing to fall back to). False when
    several versions including legacy ones are offered without TLS 1.3.
    None when no handshake succeeded at all.
    """
    enabled = [v for v, state in tls_versions.items() if state == "enabled"]
    if not enabled:
        return None
    if "TLSv1.3" in enabled or len(enabled) == 1:
        return True
    return False


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@dataclass
class TlsProfile:
    hostname: str
    port: int = 443
    tls_versions: Dict[str, str] = field(default_factory=dict)
    cipher_suites: List[Dict[str, Any]] = field(default_factory=list)
    certificate: Optional[Dict[str, Any]] = None
    vulnerabilities: List[VulnerabilityFinding] = field(default_factory=list)

    # Passive signals read by the vulnerability heuristics
    compression: bool = False
    sslv2_enabled: bool = False
    sslv3_enabled: bool = False
    openssl_version: Optional[str] = None
    server_software: Optional[str] = None
    session_ticket_length: Optional[int] = None
    fallback_scsv: Optional[bool] = None

    error: Optional[str] = None

    @property
    def cipher_names(self) -> List[str]:
        return [c["name"] for c in self.cipher_suites if c.get("name")]

    def add_cipher(self, name: Optional[str], version: Optional[str]):
        if not name or name in self.cipher_names:
            return
        self.cipher_suites.append({
            "name": name,
            "strength": classify_cipher_suite(name),
            "forward_secrecy": has_forward_secrecy(name),
            "version": version,
        })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hostname": self.hostname,
            "port": self.port,
            "tls_versions": dict(self.tls_versions),
            "cipher_suites": [dict(c) for c in self.cipher_suites],
            "certificate": self.certificate,
            "vulnerabilities": [v.to_dict() for v in self.vulnerabilities],
            "compression": self.compression,
            "sslv2_enabled": self.sslv2_enabled,
            "sslv3_enabled": self.sslv3_enabled,
            "openssl_version": self.openssl_version,
            "server_software": self.server_software,
            "session_ticket_length": self.session_ticket_length,
            "fallback_scsv": self.fallback_scsv,
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Handshakes
# ---------------------------------------------------------------------------

def _client_context(version: Optional[ssl.TLSVersion] = None) -> ssl.SSLContext:
    """Non-verifying client context, optionally pinned to one version."""
    with warnings.catch_warnings():
        # TLSv1 / TLSv1_1 / SSLv3 constants are deprecated; we need them anyway
        warnings.simplefilter("ignore", DeprecationWarning)
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        try:
            context.set_ciphers(LEGACY_CIPHERS)
        except ssl.SSLError:
            pass
        if version is not None:
            context.minimum_version = version
            context.maximum_version = version
    return context


def _handshake(
    connect_host: str,
    port: int,
    hostname: str,
    timeout: float,
    version: Optional[ssl.TLSVersion] = None,
) -> Dict[str, Any]:
    """
    One TLS handshake. Raises OSError / ssl.SSLError / ValueError on
    failure; callers decide what a failure means.
    """
    context = _client_context(version)
    with socket.create_connection((connect_host, port), timeout=timeout) as sock:
        with context.wrap_socket(sock, server_hostname=hostname) as ssock:
            cipher = ssock.cipher()
            return {
                "cipher": cipher[0] if cipher else None,
                "version": ssock.version(),
                "compression": ssock.compression(),
                "der": ssock.getpeercert(binary_form=True),
            }


def _probe_version(
    connect_host: str,
    port: int,
    hostname: str,
    timeout: float,
    version: ssl.TLSVersion,
) -> Optional[Dict[str, Any]]:
    try:
        return _handshake(connect_host, port, hostname, timeout, version=version)
    except (OSError, ValueError) as e:
        logger.debug("TLS %s on %s:%s refused: %s", version.name, connect_host, port, e)
        return None


def sslv3_supported_locally() -> bool:
    return bool(getattr(ssl, "HAS_SSLv3", False))


# ---------------------------------------------------------------------------
# Certificate
# ---------------------------------------------------------------------------

def parse_certificate(der: Optional[bytes], now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """DER leaf certificate → certificate summary, or None if unparseable."""
    if not der:
        return None
    try:
        cert = x509.load_der_x509_certificate(der)
    except ValueError as e:
        logger.debug("Certificate parse failed: %s", e)
        return None

    now = now or datetime.now(timezone.utc)

    issuer_org = cert.issuer.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)
    issuer_cn = cert.issuer.get_attributes_for_oid(NameOID.COMMON_NAME)
    issuer = issuer_org[0].value if issuer_org else (issuer_cn[0].value if issuer_cn else None)

    subject_cn = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    subject = subject_cn[0].value if subject_cn else None

    alt_names: List[str] = []
    try:
        san_ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        alt_names = san_ext.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        pass

    not_before = cert.not_valid_before_utc
    not_after = cert.not_valid_after_utc

    return {
        "valid": not_before <= now <= not_after,
        "issuer": issuer,
        "subject": subject,
        "expires_on": not_after.isoformat(),
        "days_remaining": (not_after - now).days,
        "alt_names": alt_names,
    }


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def analyze_tls(
    hostname: str,
    port: int = 443,
    address: Optional[str] = None,
    server_software: Optional[str] = None,
    timeout: float = HANDSHAKE_TIMEOUT,
) -> TlsProfile:
    """
    Analyze the TLS configuration of hostname:port.

    Args:
        hostname:        Name sent as SNI
        port:            TLS port
        address:         Pre-resolved, SSRF-checked IP to connect to.
                         Callers that pass None must have vetted hostname.
        server_software: Server header value, if an HTTP fetch saw one
        timeout:         Per-handshake timeout in seconds
    """
    connect_host = address or hostname
    profile = TlsProfile(
        hostname=hostname,
        port=port,
        server_software=server_software,
        openssl_version=parse_openssl_version(server_software),
    )

    # --- Version pinning, newest first, sequential ---
    for label, version in TLS_VERSIONS.items():
        info = _probe_version(connect_host, port, hostname, timeout, version)
        profile.tls_versions[label] = "enabled" if info else "disabled"
        if info:
            profile.add_cipher(info["cipher"], info["version"])

    if sslv3_supported_locally():
        info = _probe_version(connect_host, port, hostname, timeout, ssl.TLSVersion.SSLv3)
        profile.sslv3_enabled = info is not None
        if info:
            profile.add_cipher(info["cipher"], info["version"])

    # --- Unpinned handshake: negotiated cipher, compression, certificate ---
    try:
        info = _handshake(connect_host, port, hostname, timeout)
        profile.add_cipher(info["cipher"], info["version"])
        profile.compression = bool(info["compression"])
        profile.certificate = parse_certificate(info["der"])
    except (OSError, ValueError) as e:
        logger.info("TLS handshake with %s:%s failed: %s", hostname, port, e)
        profile.error = f"TLS handshake failed: {e}"

    profile.fallback_scsv = infer_fallback_scsv(profile.tls_versions)
    profile.vulnerabilities = detect_vulnerabilities(profile)

    enabled = [v for v, s in profile.tls_versions.items() if s == "enabled"]
    logger.info(
        "TLS %s:%s: versions=%s ciphers=%d vulnerable=%d",
        hostname, port, enabled or "none", len(profile.cipher_suites),
        sum(1 for v in profile.vulnerabilities if v.is_vulnerable),
    )
    return profile


class TLSEngine(BaseEngine):
    """
    TLS configuration of the target's HTTPS port.

    Uses the Server header from the "http" engine, when it ran first, as
    the server-software signal.

    Profile config:
        port:    TLS port. Default 443.
        timeout: Per-handshake timeout in seconds. Default 5.
    """

    @property
    def name(self) -> str:
        return "tls"

    def execute(self, ctx: ScanContext, config: Dict[str, Any]) -> EngineResult:
        result = EngineResult(engine_name=self.name)

        http_data = ctx.get_engine_data("http")
        server = (http_data.get("headers") or {}).get("server") or ctx.software

        profile = analyze_tls(
            hostname=ctx.target.original_hostname,
            port=config.get("port", 443),
            address=ctx.target.resolved_address,
            server_software=server,
            timeout=config.get("timeout", HANDSHAKE_TIMEOUT),
        )
        if profile.error:
            result.add_error(profile.error)
        result.data = profile.to_dict()
        return result
