# cybersuite/network/__init__.py
"""
Port scan API.

Endpoints:
    GET /api/network/scan?target=&ports=&timeout=
"""

from cybersuite.network.routes import network_bp

__all__ = ["network_bp"]
