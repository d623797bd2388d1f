# cybersuite/intel/__init__.py
"""
Third-party intelligence clients (NVD, AlienVault OTX, Google Safe Browsing).

All lookups are best-effort: failures are logged and returned as a
skipped/unknown result, never raised into the scan.
"""

from cybersuite.intel import nvd, otx, safe_browsing


def configure_caches(ttl_seconds: float) -> None:
    """Apply one TTL to every client cache and drop what they hold."""
    for module in (nvd, otx, safe_browsing):
        module._cache.ttl_seconds = ttl_seconds
        module._cache.expire()
