# cybersuite/intel/safe_browsing.py
"""
Google Safe Browsing v4 reputation lookup.

check_url() → {status: "safe" | "malicious" | "unknown", matches: [...]}

"unknown" means the lookup did not happen (no key) or failed; it never
counts against the target.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import requests

from cybersuite.utils.cache import TTLCache

logger = logging.getLogger(__name__)

TIMEOUT = 8
API_URL = "https://safebrowsing.googleapis.com/v4/threatMatches:find"
THREAT_TYPES = ["MALWARE", "SOCIAL_ENGINEERING", "UNWANTED_SOFTWARE"]

_cache = TTLCache(ttl_seconds=300)


def _payload(url: str) -> Dict[str, Any]:
    return {
        "client": {"clientId": "cybersuite", "clientVersion": "1.0"},
        "threatInfo": {
            "threatTypes": THREAT_TYPES,
            "platformTypes": ["ANY_PLATFORM"],
            "threatEntryTypes": ["URL"],
            "threatEntries": [{"url": url}],
        },
    }


def check_url(url: str, api_key: str = "") -> Dict[str, Any]:
    if not api_key or not url:
        return {"status": "unknown", "matches": []}

    cached = _cache.get(url)
    if cached is not None:
        return cached

    try:
        r = requests.post(
            API_URL,
            params={"key": api_key},
            json=_payload(url),
            timeout=TIMEOUT,
        )
        r.raise_for_status()
        data = r.json() or {}
    except (requests.RequestException, ValueError) as e:
        logger.warning("Safe Browsing check failed for %s: %s", url, e)
        return {"status": "unknown", "matches": []}

    matches = data.get("matches") or []
    result = {"status": "malicious" if matches else "safe", "matches": matches}
    if matches:
        logger.warning("Safe Browsing flagged %s (%d matches)", url, len(matches))

    _cache.set(url, result)
    return result
