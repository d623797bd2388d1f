# cybersuite/scanner/analyzers/port_risk.py
"""
Port Risk Analyzer.

Reads the port scan results and:
    - flags open ports of services that should rarely face the internet
      (SSH, FTP, SMTP, MySQL, PostgreSQL, Redis) as High "network" findings
    - groups every open port into an exposure summary by service type

Service types:
    admin   21, 22
    mail    110, 143, 465, 587
    web     80, 443
    other   everything else
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from cybersuite.scanner.base import BaseAnalyzer, Finding, ScanContext

logger = logging.getLogger(__name__)


DANGEROUS_OPEN_PORTS: Dict[int, Dict[str, str]] = {
    21: {"name": "FTP", "severity": "High"},
    22: {"name": "SSH", "severity": "High"},
    25: {"name": "SMTP", "severity": "High"},
    3306: {"name": "MySQL", "severity": "High"},
    5432: {"name": "PostgreSQL", "severity": "High"},
    6379: {"name": "Redis", "severity": "High"},
}

SERVICE_TYPES: Dict[str, set] = {
    "admin": {21, 22},
    "mail": {110, 143, 465, 587},
    "web": {80, 443},
}


def service_type(port: int) -> str:
    for name, ports in SERVICE_TYPES.items():
        if port in ports:
            return name
    return "other"


def build_network_exposure(results: Optional[Iterable[Dict[str, Any]]]) -> Dict[str, Any]:
    """Group open ports by service type and count the rest."""
    exposed: Dict[str, List[int]] = {"admin": [], "mail": [], "web": [], "other": []}
    closed: List[int] = []
    total = 0

    for r in results or []:
        total += 1
        port = int(r["port"])
        if r.get("status") == "open":
            exposed[service_type(port)].append(port)
        else:
            closed.append(port)

    return {
        "admin_services": exposed["admin"],
        "mail_services": exposed["mail"],
        "web_services": exposed["web"],
        "other_services": exposed["other"],
        "total_exposed": sum(len(v) for v in exposed.values()),
        "total_closed_filtered": len(closed),
        "total_scanned": total,
    }


class PortRiskAnalyzer(BaseAnalyzer):
    """One network finding per open port in DANGEROUS_OPEN_PORTS."""

    @property
    def name(self) -> str:
        return "port_risk"

    @property
    def required_engines(self) -> List[str]:
        return ["ports"]

    def analyze(self, ctx: ScanContext) -> List[Finding]:
        data = ctx.get_engine_data("ports")
        host = data.get("target") or data.get("address") or ""
        findings: List[Finding] = []

        for r in data.get("results") or []:
            port = int(r["port"])
            info = DANGEROUS_OPEN_PORTS.get(port)
            if r.get("status") != "open" or not info:
                continue

            findings.append(Finding(
                category="network",
                severity=info["severity"],
                title=f"{info['name']} (Port {port}) is exposed",
                detail=f"Port {port} ({info['name']}) is reachable and open on host {host}.",
                evidence={"port": port, "service": info["name"]},
                extra={
                    "port": port,
                    "service": info["name"],
                    "service_type": service_type(port),
                },
            ))

        if findings:
            logger.info("Port risk for %s: %d exposed services", host, len(findings))
        return findings
