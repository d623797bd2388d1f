# cybersuite/intel/otx.py
"""
AlienVault OTX threat-intel lookups.

Uses the OTX DirectConnect "general" indicator endpoints, which work without
a key (an OTX_API_KEY raises the quota):
  - /indicators/domain/{domain}/general
  - /indicators/IPv4/{ip}/general  (IPv6 for v6 addresses)

Returns {ok, count, pulses:[{id, name, author, modified, tags}]}; failures
come back as {ok: False, error} and are never raised.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List
from urllib.parse import quote

import requests

from cybersuite.utils.cache import TTLCache

logger = logging.getLogger(__name__)

TIMEOUT = 12
BASE_URL = "https://otx.alienvault.com/api/v1"
HEADERS = {"User-Agent": "cybersuite/1.0", "Accept": "application/json"}

_cache = TTLCache(ttl_seconds=300)


def _normalize_pulse(pulse: Dict[str, Any]) -> Dict[str, Any]:
    author = pulse.get("author")
    if isinstance(author, dict):
        author = author.get("username")
    return {
        "id": pulse.get("id"),
        "name": pulse.get("name"),
        "author": author or pulse.get("author_name"),
        "modified": pulse.get("modified"),
        "tags": pulse.get("tags") or [],
    }


def _lookup(kind: str, indicator: str, api_key: str) -> Dict[str, Any]:
    key = f"otx:{kind}:{indicator}"
    cached = _cache.get(key)
    if cached is not None:
        return cached

    headers = dict(HEADERS)
    if api_key:
        headers["X-OTX-API-KEY"] = api_key

    try:
        r = requests.get(
            f"{BASE_URL}/indicators/{kind}/{quote(indicator, safe=':')}/general",
            timeout=TIMEOUT, headers=headers,
        )
        r.raise_for_status()
        data = r.json() or {}
    except (requests.RequestException, ValueError) as e:
        logger.debug("OTX %s lookup error for %s: %s", kind, indicator, e)
        return {"ok": False, "error": str(e)}

    pulse_info = data.get("pulse_info") or {}
    pulses: List[Dict[str, Any]] = [_normalize_pulse(p) for p in pulse_info.get("pulses") or []]
    out = {"ok": True, "count": int(pulse_info.get("count") or 0), "pulses": pulses}

    logger.info("OTX %s %s: %d pulses", kind, indicator, out["count"])
    _cache.set(key, out)
    return out


def lookup_domain(domain: str, api_key: str = "") -> Dict[str, Any]:
    domain = (domain or "").strip().lower().rstrip(".")
    if not domain:
        return {"ok": False, "error": "no_domain"}
    return _lookup("domain", domain, api_key)


def lookup_ip(ip: str, api_key: str = "") -> Dict[str, Any]:
    ip = (ip or "").strip()
    if not ip:
        return {"ok": False, "error": "no_ip"}
    return _lookup("IPv6" if ":" in ip else "IPv4", ip, api_key)
