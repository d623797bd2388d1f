# cybersuite/scanner/analyzers/header_analyzer.py
"""
HTTP Security Headers Analyzer.

Classifies a fixed set of 11 response headers into four states:

    present_secure   header set to a value that does its job      → Secure
    present_weak     header set, but weakly or unrecognized       → Medium
    deprecated       header that should no longer be sent at all  → High
    not_detected     header absent from this response             → Informational

Per header the rules are evaluated in order: deprecated, secure, weak.
A value that matches none of them is still present_weak.

"not_detected" is informational only. Many headers are legitimately
absent (an API never needs X-Frame-Options), so absence alone never
raises risk. See risk_scorer.py.

Separately, Server / X-Powered-By values that reveal a version number
are reported as "exposed" information leaks.

classify_headers() and detect_header_exposures() are pure functions:
identical input always gives identical output.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from cybersuite.scanner.base import BaseAnalyzer, Finding, ScanContext

logger = logging.getLogger(__name__)

PRESENT_SECURE = "present_secure"
PRESENT_WEAK = "present_weak"
DEPRECATED = "deprecated"
NOT_DETECTED = "not_detected"
EXPOSED = "exposed"

STATUS_SEVERITY = {
    PRESENT_SECURE: "Secure",
    PRESENT_WEAK: "Medium",
    DEPRECATED: "High",
    NOT_DETECTED: "Informational",
}

SECURE_RECOMMENDATION = "Configuration is secure"

HSTS_MIN_MAX_AGE = 31536000

HeaderInput = Union[Mapping[str, Any], Iterable[Tuple[str, str]], None]


class HeaderName(str, Enum):
    X_FRAME_OPTIONS = "X-Frame-Options"
    STRICT_TRANSPORT_SECURITY = "Strict-Transport-Security"
    CONTENT_SECURITY_POLICY = "Content-Security-Policy"
    X_CONTENT_TYPE_OPTIONS = "X-Content-Type-Options"
    X_XSS_PROTECTION = "X-XSS-Protection"
    REFERRER_POLICY = "Referrer-Policy"
    PERMISSIONS_POLICY = "Permissions-Policy"
    SET_COOKIE = "Set-Cookie"
    CROSS_ORIGIN_RESOURCE_POLICY = "Cross-Origin-Resource-Policy"
    CROSS_ORIGIN_EMBEDDER_POLICY = "Cross-Origin-Embedder-Policy"
    CROSS_ORIGIN_OPENER_POLICY = "Cross-Origin-Opener-Policy"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class HeaderClassification:
    header_name: str
    status: str
    detected_value: Optional[str]
    severity: str
    explanation: str
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header_name": self.header_name,
            "status": self.status,
            "detected_value": self.detected_value,
            "severity": self.severity,
            "explanation": self.explanation,
            "recommendation": self.recommendation,
        }


@dataclass
class HeaderExposure:
    header_name: str
    detected_value: str
    severity: str
    explanation: str
    recommendation: str
    status: str = EXPOSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header_name": self.header_name,
            "status": self.status,
            "detected_value": self.detected_value,
            "severity": self.severity,
            "explanation": self.explanation,
            "recommendation": self.recommendation,
        }


# Predicates receive every value of the header (Set-Cookie can repeat)
Predicate = Callable[[List[str]], bool]


@dataclass(frozen=True)
class HeaderRule:
    explanation: str
    recommendation: str
    secure: Predicate
    weak: Optional[Predicate] = None
    deprecated: Optional[Predicate] = None


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def _first(values: List[str]) -> str:
    return values[0].strip().lower() if values else ""


def _token(values: List[str]) -> str:
    """First directive, e.g. 'same-origin; report-to="x"' → 'same-origin'."""
    return _first(values).split(";")[0].strip()


def _one_of(*allowed: str) -> Predicate:
    return lambda values: _token(values) in allowed


def _hsts_max_age(value: str) -> Optional[int]:
    m = re.search(r"max-age\s*=\s*\"?(\d+)\"?", value, re.IGNORECASE)
    return int(m.group(1)) if m else None


def _directives(value: str) -> List[str]:
    return [d.strip().lower() for d in value.split(";") if d.strip()]


def _hsts_secure(values: List[str]) -> bool:
    value = _first(values)
    max_age = _hsts_max_age(value)
    if max_age is None or max_age < HSTS_MIN_MAX_AGE:
        return False
    directives = _directives(value)
    return "includesubdomains" in directives or "preload" in directives


def _csp_secure(values: List[str]) -> bool:
    value = _first(values)
    return (
        "default-src" in value
        and "unsafe-inline" not in value
        and "unsafe-eval" not in value
    )


def _csp_weak(values: List[str]) -> bool:
    value = _first(values)
    return any(marker in value for marker in ("unsafe-inline", "unsafe-eval", "*", "data:"))


def _referrer(values: List[str]) -> str:
    # Comma-separated fallback lists: browsers apply the last value they support
    policies = [p.strip() for p in _first(values).split(",") if p.strip()]
    return policies[-1] if policies else ""


def _permissions_secure(values: List[str]) -> bool:
    value = _first(values)
    return "*" not in value and "=(" in value.replace(" ", "")


def _permissions_weak(values: List[str]) -> bool:
    value = _first(values)
    return "*" in value or "self" in value


def _cookie_attributes(cookie: str) -> Dict[str, str]:
    """Attributes of one Set-Cookie value; the name=value pair is skipped."""
    attrs: Dict[str, str] = {}
    for part in cookie.split(";")[1:]:
        key, _, val = part.strip().partition("=")
        if key:
            attrs[key.strip().lower()] = val.strip().lower()
    return attrs


def _cookie_is_hardened(cookie: str) -> bool:
    attrs = _cookie_attributes(cookie)
    return "secure" in attrs and "httponly" in attrs and attrs.get("samesite") in ("strict", "lax")


def _cookies_secure(values: List[str]) -> bool:
    cookies = [c for c in values if c.strip()]
    return bool(cookies) and all(_cookie_is_hardened(c) for c in cookies)


def _cookies_weak(values: List[str]) -> bool:
    return any(not _cookie_is_hardened(c) for c in values if c.strip())


HEADER_RULES: Dict[HeaderName, HeaderRule] = {
    HeaderName.X_FRAME_OPTIONS: HeaderRule(
        explanation="Prevents clickjacking attacks by controlling iframe embedding",
        recommendation="Use DENY or SAMEORIGIN, or the CSP frame-ancestors directive",
        secure=_one_of("deny", "sameorigin"),
    ),
    HeaderName.STRICT_TRANSPORT_SECURITY: HeaderRule(
        explanation="Forces HTTPS connections and prevents protocol downgrade attacks",
        recommendation="Use max-age=31536000; includeSubDomains; preload for maximum security",
        secure=_hsts_secure,
    ),
    HeaderName.CONTENT_SECURITY_POLICY: HeaderRule(
        explanation="Prevents XSS attacks by controlling resource loading",
        recommendation="Use a strict CSP with default-src and without unsafe directives",
        secure=_csp_secure,
        weak=_csp_weak,
    ),
    HeaderName.X_CONTENT_TYPE_OPTIONS: HeaderRule(
        explanation="Prevents MIME type sniffing attacks",
        recommendation="Always set to nosniff",
        secure=_one_of("nosniff"),
    ),
    HeaderName.X_XSS_PROTECTION: HeaderRule(
        explanation="Legacy XSS filter header, removed from modern browsers",
        recommendation="Remove this header and rely on Content-Security-Policy instead",
        secure=lambda values: False,
        deprecated=lambda values: True,
    ),
    HeaderName.REFERRER_POLICY: HeaderRule(
        explanation="Controls referrer information leakage",
        recommendation="Use strict-origin-when-cross-origin or no-referrer",
        secure=lambda values: _referrer(values) in (
            "no-referrer", "same-origin", "strict-origin", "strict-origin-when-cross-origin",
        ),
        weak=lambda values: _referrer(values) in (
            "origin", "origin-when-cross-origin", "unsafe-url", "no-referrer-when-downgrade",
        ),
    ),
    HeaderName.PERMISSIONS_POLICY: HeaderRule(
        explanation="Controls browser feature access (camera, microphone, etc.)",
        recommendation="Restrict sensitive features explicitly, e.g. camera=(), microphone=()",
        secure=_permissions_secure,
        weak=_permissions_weak,
    ),
    HeaderName.SET_COOKIE: HeaderRule(
        explanation="Cookie security attributes",
        recommendation="Set Secure, HttpOnly and SameSite=Strict or Lax on every cookie",
        secure=_cookies_secure,
        weak=_cookies_weak,
    ),
    HeaderName.CROSS_ORIGIN_RESOURCE_POLICY: HeaderRule(
        explanation="Prevents other origins from loading this resource",
        recommendation="Use same-origin or same-site for sensitive resources",
        secure=_one_of("same-origin", "same-site"),
        weak=_one_of("cross-origin"),
    ),
    HeaderName.CROSS_ORIGIN_EMBEDDER_POLICY: HeaderRule(
        explanation="Controls cross-origin embedding",
        recommendation="Use require-corp for maximum security",
        secure=_one_of("require-corp", "credentialless"),
    ),
    HeaderName.CROSS_ORIGIN_OPENER_POLICY: HeaderRule(
        explanation="Isolates browsing contexts from cross-origin windows",
        recommendation="Use same-origin for sensitive applications",
        secure=_one_of("same-origin", "same-origin-allow-popups"),
        weak=_one_of("unsafe-none"),
    ),
}


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_headers(headers: HeaderInput) -> Dict[str, List[str]]:
    """
    Lower-cased header name → every value seen.

    Accepts a plain mapping (values may be lists), an httpx.Headers-like
    object exposing multi_items(), or an iterable of (name, value) pairs.
    """
    out: Dict[str, List[str]] = {}
    if not headers:
        return out

    if hasattr(headers, "multi_items"):
        items = headers.multi_items()
    elif isinstance(headers, Mapping):
        items = headers.items()
    else:
        items = headers

    for name, value in items:
        key = str(name).lower()
        values = value if isinstance(value, (list, tuple)) else [value]
        for v in values:
            if v is None:
                continue
            out.setdefault(key, []).append(str(v))
    return out


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _classify_one(name: HeaderName, rule: HeaderRule, values: List[str], is_https: bool) -> HeaderClassification:
    present = [v for v in values if v.strip()]
    explanation = rule.explanation

    if not present:
        status = NOT_DETECTED
    elif rule.deprecated and rule.deprecated(present):
        status = DEPRECATED
    elif rule.secure(present):
        status = PRESENT_SECURE
    elif rule.weak and rule.weak(present):
        status = PRESENT_WEAK
    else:
        status = PRESENT_WEAK

    if name is HeaderName.STRICT_TRANSPORT_SECURITY and present and not is_https:
        explanation += " (browsers ignore it on plain HTTP responses)"

    return HeaderClassification(
        header_name=name.value,
        status=status,
        detected_value="; ".join(v.strip() for v in present) if present else None,
        severity=STATUS_SEVERITY[status],
        explanation=explanation,
        recommendation=SECURE_RECOMMENDATION if status == PRESENT_SECURE else rule.recommendation,
    )


def classify_headers(headers: HeaderInput, is_https: bool = False) -> List[HeaderClassification]:
    """One classification per security header, in HeaderName order."""
    normalized = normalize_headers(headers)
    return [
        _classify_one(name, rule, normalized.get(name.value.lower(), []), is_https)
        for name, rule in HEADER_RULES.items()
    ]


# ---------------------------------------------------------------------------
# Information leaks
# ---------------------------------------------------------------------------

VERSION_RE = re.compile(r"\d+(?:\.\d+)+|/\s*v?\d+")

EXPOSURE_HEADERS = {
    "server": (
        "Server",
        "Server header reveals software version, helping attackers pick matching exploits",
        "Remove the version from the Server header (e.g. nginx server_tokens off, Apache ServerTokens Prod)",
    ),
    "x-powered-by": (
        "X-Powered-By",
        "X-Powered-By reveals the application stack and version",
        "Remove the X-Powered-By header",
    ),
    "x-aspnet-version": (
        "X-AspNet-Version",
        "X-AspNet-Version reveals the exact ASP.NET runtime version",
        "Disable it with <httpRuntime enableVersionHeader=\"false\" />",
    ),
}


def detect_header_exposures(headers: HeaderInput) -> List[HeaderExposure]:
    """Headers whose value carries a software version number."""
    normalized = normalize_headers(headers)
    exposures: List[HeaderExposure] = []

    for key, (display, explanation, recommendation) in EXPOSURE_HEADERS.items():
        for value in normalized.get(key, []):
            if VERSION_RE.search(value):
                exposures.append(HeaderExposure(
                    header_name=display,
                    detected_value=value.strip(),
                    severity="Low",
                    explanation=explanation,
                    recommendation=recommendation,
                ))
                break

    return exposures


# ---------------------------------------------------------------------------
# Pipeline analyzer
# ---------------------------------------------------------------------------

class HeaderAnalyzer(BaseAnalyzer):
    """
    Turns the website fetch into "website" findings.

    Only deprecated and weak headers plus version leaks become findings.
    Absent headers stay informational. When the fetch was limited by a
    WAF/CDN the headers are not the site's real ones, so no header
    findings are produced at all.
    """

    @property
    def name(self) -> str:
        return "header_analyzer"

    @property
    def required_engines(self) -> List[str]:
        return ["http"]

    def analyze(self, ctx: ScanContext) -> List[Finding]:
        data = ctx.get_engine_data("http")
        if data.get("scan_status") == "limited":
            logger.debug("Header findings skipped for %s: limited scan", ctx.host)
            return []

        findings: List[Finding] = []

        for c in data.get("headers_classified") or []:
            if c["status"] not in (DEPRECATED, PRESENT_WEAK):
                continue
            findings.append(Finding(
                category="website",
                severity=c["severity"],
                title=f"{c['header_name']}: {c['status']}",
                detail=f"{c['explanation']}. {c['recommendation']}.",
                evidence={"header": c["header_name"], "value": c["detected_value"]},
            ))

        for e in data.get("header_exposures") or []:
            findings.append(Finding(
                category="website",
                severity=e["severity"],
                title=f"{e['header_name']} header exposes version",
                detail=e["explanation"],
                evidence={"header": e["header_name"], "value": e["detected_value"]},
            ))

        return findings
