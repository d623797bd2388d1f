# cybersuite/scanner/analyzers/tech_detector.py
"""
Software detection for the CVE lookup.

Works out which software (and version) a target runs, so the lite scan can
decide whether a CVE search is meaningful:

    1. explicit "software" field from the caller   ("apache 2.4.49")
    2. Server header of the website fetch           ("nginx/1.18.0")
    3. first label of the host name                 (name only, never a version)

CVE decision gate: the NVD search only runs when a version is exposed and
the software is not managed infrastructure (Cloudflare, Google front ends,
Akamai...). Those patch themselves and a keyword search against them only
produces noise.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

# Server / product token → NVD keyword
CVE_SEARCH_NAMES: Dict[str, str] = {
    "apache-coyote": "apache tomcat",
    "coyote": "apache tomcat",
    "tomcat": "apache tomcat",
    "apache": "apache http server",
    "httpd": "apache http server",
    "nginx": "nginx",
    "openresty": "openresty",
    "iis": "microsoft iis",
    "microsoft-iis": "microsoft iis",
    "php": "php",
    "wordpress": "wordpress",
    "joomla": "joomla",
    "drupal": "drupal",
    "mysql": "mysql",
    "postgresql": "postgresql",
    "redis": "redis",
    "mongodb": "mongodb",
    "nodejs": "node.js",
    "node": "node.js",
    "express": "express",
    "django": "django",
    "rails": "ruby on rails",
    "spring": "spring framework",
    "struts": "apache struts",
    "lighttpd": "lighttpd",
    "litespeed": "litespeed web server",
    "openssh": "openssh",
}

# Checked in order when there is no exact match
PARTIAL_SEARCH_NAMES: List[Tuple[str, str]] = [
    ("tomcat", "apache tomcat"),
    ("apache", "apache http server"),
    ("iis", "microsoft iis"),
    ("nginx", "nginx"),
    ("php", "php"),
    ("wordpress", "wordpress"),
    ("mysql", "mysql"),
    ("node", "node.js"),
]

MANAGED_INFRASTRUCTURE = ["gws", "cloudflare", "akamai", "amazon", "microsoft-iis", "esf"]

# Headers that mark a CDN/WAF in front of the origin
CDN_WAF_HEADERS: Dict[str, str] = {
    "cf-ray": "Cloudflare",
    "cf-cache-status": "Cloudflare",
    "x-amz-cf-id": "AWS CloudFront",
    "x-amz-cf-pop": "AWS CloudFront",
    "x-fastly-request-id": "Fastly",
    "x-sucuri-id": "Sucuri WAF",
    "x-akamai-transformed": "Akamai",
    "x-azure-ref": "Azure CDN",
}

# CVE summary keyword → human label
SOFTWARE_LABELS: List[Tuple[Tuple[str, ...], str]] = [
    (("log4j", "log4j2", "log4j-core"), "Apache Log4j (Java library)"),
    (("commons-configuration",), "Apache Commons Configuration (Java library)"),
    (("roxy-wi", "roxywi"), "Roxy-WI (admin panel)"),
    (("tomcat",), "Apache Tomcat (Java servlet container)"),
    (("struts",), "Apache Struts (Java framework)"),
    (("httpd", "apache http server", "apache httpd"), "Apache HTTP Server"),
]

SLASH_RE = re.compile(r"^([A-Za-z0-9\-_.]+)/(\S+)")
SPACE_RE = re.compile(r"^([A-Za-z0-9\-_.]+)\s+([0-9]+[.0-9a-zA-Z_\-]*)")


@dataclass
class DetectedSoftware:
    name: Optional[str] = None
    version: Optional[str] = None
    source: Optional[str] = None     # "input", "server_header", "hostname"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_software_string(value: Optional[str]) -> DetectedSoftware:
    """
    "nginx/1.18.0", "Apache/2.4.49 (Unix)", "Apache 2.4.49", "wordpress"
    → DetectedSoftware(name lower-cased, version or None).
    """
    if not value:
        return DetectedSoftware()
    s = str(value).strip()

    m = SLASH_RE.match(s)
    if m:
        return DetectedSoftware(name=m.group(1).lower(), version=m.group(2))

    m = SPACE_RE.match(s)
    if m:
        return DetectedSoftware(name=m.group(1).lower(), version=m.group(2))

    first = re.split(r"[\s/;()]+", s)[0]
    return DetectedSoftware(name=first.lower() or None)


def map_to_cve_search_name(name: str) -> str:
    """Server token → the product name NVD knows it by."""
    key = (name or "").lower()
    if key in CVE_SEARCH_NAMES:
        return CVE_SEARCH_NAMES[key]
    for needle, search_name in PARTIAL_SEARCH_NAMES:
        if needle in key:
            return search_name
    return key


def is_managed_infrastructure(name: Optional[str]) -> bool:
    lowered = (name or "").lower()
    return any(marker in lowered for marker in MANAGED_INFRASTRUCTURE)


def detect_cdn(headers: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Name of the CDN/WAF fronting the site, if its headers give it away."""
    for key in (headers or {}):
        vendor = CDN_WAF_HEADERS.get(str(key).lower())
        if vendor:
            return vendor
    return None


def detect_software(
    software: Optional[str] = None,
    server_header: Optional[str] = None,
    host: Optional[str] = None,
) -> DetectedSoftware:
    """Pick the best software signal: caller input, Server header, host label."""
    detected = parse_software_string(software)
    if detected.name and detected.name != "server":
        detected.source = "input"
        return detected

    detected = parse_software_string(server_header)
    if detected.name and detected.name != "server":
        detected.source = "server_header"
        return detected

    if host:
        first_label = host.split(".")[0].lower()
        if first_label and first_label != "www":
            return DetectedSoftware(name=first_label, source="hostname")

    return DetectedSoftware()


def cve_skip_reason(detected: DetectedSoftware) -> Optional[str]:
    """Why the CVE search should not run, or None when it should."""
    if not detected.name:
        return "Software not detected"
    if is_managed_infrastructure(detected.name):
        return "Managed infrastructure detected"
    if not detected.version:
        return "Software version not exposed"
    return None


def derive_software_label(cve_item: Mapping[str, Any], detected: Optional[DetectedSoftware] = None) -> str:
    """Human-friendly label for the software a CVE item is about."""
    summary = str(cve_item.get("summary") or "").lower()
    for keywords, label in SOFTWARE_LABELS:
        if any(k in summary for k in keywords):
            return label

    if detected and detected.name:
        name = re.sub(r"[-_]", " ", detected.name)
        version = f" {detected.version}" if detected.version else ""
        return f"{name}{version} (inferred)"
    return "Inferred software (family)"
