# cybersuite/cve/__init__.py
"""
CVE keyword search API.

Endpoints:
    GET /api/cve/search?q=&version=&limit=
"""

from cybersuite.cve.routes import cve_bp

__all__ = ["cve_bp"]
