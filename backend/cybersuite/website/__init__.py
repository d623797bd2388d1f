# cybersuite/website/__init__.py
"""
Website header / TLS / reputation scan API.

Endpoints:
    POST /api/website/scan   {url}
"""

from cybersuite.website.routes import website_bp

__all__ = ["website_bp"]
