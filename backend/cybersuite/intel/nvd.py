# cybersuite/intel/nvd.py
"""
NVD CVE keyword search.

Queries the NVD 2.0 REST API for a product keyword and narrows the hits to
CVEs that plausibly affect the given version.

Severity mapping (best available CVSS: v3.1, then v3.0, then v2):
    9.0 - 10.0  →  Critical
    7.0 -  8.9  →  High
    4.0 -  6.9  →  Medium
    0.1 -  3.9  →  Low
    0.0 / None  →  Unknown

Version matching, first hit wins:
    1. full version in the affected-version ranges
    2. major.minor in the ranges
    3. major in the ranges
    4. summary mentions the product (web server families only)
    5. full version, then major.minor, in the summary

The search is skipped (never an error) when no version is given or the
query names managed infrastructure. Network failures are reported as a
skipped result so the lite scan keeps going.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from cybersuite.scanner.analyzers.tech_detector import is_managed_infrastructure
from cybersuite.utils.cache import TTLCache

logger = logging.getLogger(__name__)

NVD_URL = "https://services.nvd.nist.gov/rest/json/cves/2.0"
NVD_DETAIL_URL = "https://nvd.nist.gov/vuln/detail/"
TIMEOUT = 8
RESULTS_PER_PAGE = 200
MAX_LIMIT = 100
MAX_AFFECTED_RANGES = 5
HEADERS = {"User-Agent": "cybersuite/1.0", "Accept": "application/json"}

# Families whose summaries are specific enough to match on product name alone
SUMMARY_FAMILIES = ("nginx", "apache", "php")

_cache = TTLCache(ttl_seconds=300)


def cvss_to_severity(cvss: Optional[float]) -> str:
    if not cvss:
        return "Unknown"
    if cvss >= 9.0:
        return "Critical"
    if cvss >= 7.0:
        return "High"
    if cvss >= 4.0:
        return "Medium"
    if cvss > 0:
        return "Low"
    return "Unknown"


def extract_cvss(cve: Dict[str, Any]) -> Optional[float]:
    metrics = cve.get("metrics") or {}
    for key in ("cvssMetricV31", "cvssMetricV30", "cvssMetricV2"):
        entries = metrics.get(key) or []
        if entries and isinstance(entries[0], dict) and entries[0].get("cvssData"):
            score = entries[0]["cvssData"].get("baseScore")
            try:
                return float(score) if score is not None else None
            except (TypeError, ValueError):
                return None
    return None


def extract_affected_versions(cve: Dict[str, Any]) -> Optional[str]:
    """
    Version ranges from the CPE configuration nodes, e.g. "2.4.0 - 2.4.50".
    Falls back to the version field of the CPE URI. At most 5 unique ranges.
    """
    configurations = cve.get("configurations") or []
    if isinstance(configurations, dict):
        configurations = [configurations]

    nodes: List[Dict[str, Any]] = []
    for config in configurations:
        if isinstance(config, dict):
            nodes.extend(config.get("nodes") or [])

    ranges: List[str] = []
    for node in nodes:
        for match in node.get("cpeMatch") or node.get("cpe_match") or []:
            start = match.get("versionStartIncluding") or match.get("versionStartExcluding")
            end = match.get("versionEndIncluding") or match.get("versionEndExcluding")
            if start or end:
                entry = f"{start or '*'} - {end or '*'}"
            else:
                parts = str(match.get("criteria") or match.get("cpe23Uri") or "").split(":")
                entry = parts[5] if len(parts) > 5 and parts[5] not in ("", "*", "-") else None
            if entry and entry not in ranges:
                ranges.append(entry)

    if not ranges:
        return None
    return ", ".join(ranges[:MAX_AFFECTED_RANGES])


def _published_date(raw: Optional[str]) -> str:
    if not raw:
        return ""
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return ""


def normalize_item(entry: Dict[str, Any]) -> Dict[str, Any]:
    """One NVD "vulnerabilities" entry → CVE item."""
    cve = entry.get("cve") or {}
    cve_id = cve.get("id") or ""
    cvss = extract_cvss(cve)
    descriptions = cve.get("descriptions") or []
    summary = descriptions[0].get("value", "") if descriptions else ""

    references: List[str] = []
    for ref in cve.get("references") or []:
        url = ref.get("url")
        if url and url not in references:
            references.append(url)

    return {
        "id": cve_id,
        "summary": summary,
        "cvss": cvss,
        "severity": cvss_to_severity(cvss),
        "published": _published_date(cve.get("published")),
        "nvd_url": f"{NVD_DETAIL_URL}{cve_id}" if cve_id else None,
        "references": references,
        "affected_versions": extract_affected_versions(cve),
        "source": "NVD",
    }


def _version_parts(version: str) -> List[str]:
    return [p.lstrip("0") or "0" for p in version.lower().split(".") if p]


def matches_version(item: Dict[str, Any], query: str, version: str) -> bool:
    version = version.lower()
    parts = _version_parts(version)
    major_minor = f"{parts[0]}.{parts[1]}" if len(parts) >= 2 else None
    major = parts[0] if parts else None

    affected = str(item.get("affected_versions") or "").lower()
    summary = str(item.get("summary") or "").lower()

    if affected:
        if version in affected:
            return True
        if major_minor and major_minor in affected:
            return True
        if major and major in affected:
            return True

    if query.lower() in summary and any(f in summary for f in SUMMARY_FAMILIES):
        return True

    if version in summary:
        return True
    return bool(major_minor and major_minor in summary)


def _skipped(query: str, version: Optional[str], reason: str) -> Dict[str, Any]:
    return {
        "ok": True,
        "query": query,
        "version": version,
        "count": 0,
        "items": [],
        "skipped": True,
        "status": "skipped",
        "reason": reason,
    }


def search_cves(
    query: str,
    version: Optional[str] = None,
    limit: int = 10,
    api_key: str = "",
) -> Dict[str, Any]:
    """
    Keyword search against NVD, filtered by version.

    Returns {ok, query, version, count, status, items} with status
    "confirmed", or a skipped result carrying a "reason".
    """
    query = (query or "").strip()
    version = (version or "").strip() or None

    if not query:
        raise ValueError("missing_query")
    if not version:
        return _skipped(query, version, "Version not provided")
    if is_managed_infrastructure(query):
        return _skipped(query, version, "CVE scan skipped because detected software is managed infrastructure.")

    limit = max(1, min(MAX_LIMIT, int(limit)))
    cache_key = f"nvd:{query.lower()}:{version.lower()}:{limit}"
    cached = _cache.get(cache_key)
    if cached is not None:
        return cached

    headers = dict(HEADERS)
    if api_key:
        headers["apiKey"] = api_key

    try:
        r = requests.get(
            NVD_URL,
            params={"keywordSearch": query, "resultsPerPage": RESULTS_PER_PAGE},
            headers=headers, timeout=TIMEOUT,
        )
        r.raise_for_status()
        data = r.json()
    except requests.Timeout:
        logger.warning("NVD search timed out for %r", query)
        return _skipped(query, version, "CVE check skipped due to timeout")
    except (requests.RequestException, ValueError) as e:
        logger.warning("NVD search failed for %r: %s", query, e)
        return _skipped(query, version, f"CVE search failed: {e}")

    raw = data.get("vulnerabilities") or []
    items = [normalize_item(entry) for entry in raw]
    items = [i for i in items if matches_version(i, query, version)]
    items.sort(key=lambda i: (i["cvss"] or 0, i["published"] or ""), reverse=True)
    items = items[:limit]

    logger.info("NVD: %d of %d CVEs match %s %s", len(items), len(raw), query, version)

    result = {
        "ok": True,
        "query": query,
        "version": version,
        "count": len(items),
        "status": "confirmed",
        "items": items,
        "message": "Confirmed CVE search (version matched)",
    }
    _cache.set(cache_key, result)
    return result
