# cybersuite/config.py
"""
Environment-driven settings.

Every value can be overridden through the environment (or a .env loaded by the
process manager). create_app() copies these into app.config so tests can
override them per app instance.

    OTX_API_KEY                    AlienVault OTX key (optional, raises quota)
    GOOGLE_SAFE_BROWSING_API_KEY   Safe Browsing v4 key (reputation is skipped without it)
    NVD_API_KEY                    NVD 2.0 API key (optional, raises rate limit)
    CORS_ORIGINS                   comma-separated allowed origins
    CACHE_TTL_SECONDS              TTL for collaborator lookups (default 300)
    SCAN_RATE_LIMIT                /api/network/scan requests per window (default 100)
    SCAN_RATE_WINDOW_SECONDS       rate limit window (default 900)
    PORT                           dev server port (default 8080)
"""

from __future__ import annotations

import os
from typing import Any, Dict, List


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def cors_origins() -> List[str]:
    raw = os.getenv("CORS_ORIGINS", "")
    return [o.strip() for o in raw.split(",") if o.strip()]


def is_production() -> bool:
    """Detect production by checking CORS_ORIGINS for https."""
    return os.getenv("CORS_ORIGINS", "").startswith("https://")


def load_config() -> Dict[str, Any]:
    return {
        "OTX_API_KEY": os.getenv("OTX_API_KEY", ""),
        "GOOGLE_SAFE_BROWSING_API_KEY": os.getenv("GOOGLE_SAFE_BROWSING_API_KEY", ""),
        "NVD_API_KEY": os.getenv("NVD_API_KEY", ""),
        "CACHE_TTL_SECONDS": _int_env("CACHE_TTL_SECONDS", 300),
        "SCAN_RATE_LIMIT": _int_env("SCAN_RATE_LIMIT", 100),
        "SCAN_RATE_WINDOW_SECONDS": _int_env("SCAN_RATE_WINDOW_SECONDS", 900),
        "PORT": _int_env("PORT", 8080),
    }


def key_status(value: str) -> str:
    """Never log key material, only whether it is present."""
    return "Configured" if value else "Not Set"
