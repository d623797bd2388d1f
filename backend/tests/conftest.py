"""
Shared fixtures for the cybersuite test suite.

Network collaborators (DNS, NVD, OTX, Safe Browsing) are always mocked;
only the prober tests open real sockets, and only on 127.0.0.1.
"""

import socket

import pytest

from cybersuite import create_app
from cybersuite.intel import configure_caches


def addrinfo(*addresses):
    """Build a getaddrinfo() result list for the given IP strings."""
    out = []
    for addr in addresses:
        family = socket.AF_INET6 if ":" in addr else socket.AF_INET
        sockaddr = (addr, 0, 0, 0) if family == socket.AF_INET6 else (addr, 0)
        out.append((family, socket.SOCK_STREAM, 6, "", sockaddr))
    return out


@pytest.fixture
def fake_dns(monkeypatch):
    """
    Route name lookups through a dict: host → list of IPs.
    Hosts missing from the dict fail with gaierror.
    """
    records = {}

    def _getaddrinfo(host, *args, **kwargs):
        if host not in records:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        return addrinfo(*records[host])

    monkeypatch.setattr("cybersuite.scanner.target.socket.getaddrinfo", _getaddrinfo)
    return records


@pytest.fixture(autouse=True)
def clear_caches():
    configure_caches(300)
    yield
    configure_caches(300)


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "OTX_API_KEY": "",
        "GOOGLE_SAFE_BROWSING_API_KEY": "",
        "NVD_API_KEY": "",
        "SCAN_RATE_LIMIT": 3,
        "SCAN_RATE_WINDOW_SECONDS": 900,
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()
