# cybersuite/vuln/__init__.py
"""
Lite vulnerability scan API.

Endpoints:
    POST /api/vuln/lite   {url?, software?}
"""

from cybersuite.vuln.routes import vuln_bp

__all__ = ["vuln_bp"]
