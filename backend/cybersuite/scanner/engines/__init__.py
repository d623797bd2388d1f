# cybersuite/scanner/engines/__init__.py
"""
Data collection engines.
Each engine collects raw data from a single source.
Engines do NOT classify severity, they only gather facts.
"""
from cybersuite.scanner.engines.http_engine import HTTPEngine
from cybersuite.scanner.engines.port_engine import PortEngine
from cybersuite.scanner.engines.tls_engine import TLSEngine

# Registry of all available engines.
ALL_ENGINES = {
    "http": HTTPEngine,
    "tls": TLSEngine,
    "ports": PortEngine,
}

__all__ = ["HTTPEngine", "TLSEngine", "PortEngine", "ALL_ENGINES"]
