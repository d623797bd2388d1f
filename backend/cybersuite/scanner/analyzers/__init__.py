# cybersuite/scanner/analyzers/__init__.py
"""
Finding analyzers.
Each analyzer reads engine data (or intel lookups) and produces Findings.
Analyzers do NOT collect data, they only interpret it.
"""
from cybersuite.scanner.analyzers.header_analyzer import HeaderAnalyzer
from cybersuite.scanner.analyzers.vuln_heuristics import TLSVulnerabilityAnalyzer
from cybersuite.scanner.analyzers.port_risk import PortRiskAnalyzer
from cybersuite.scanner.analyzers.intel_findings import CVEAnalyzer, ThreatIntelAnalyzer

# Registry of all available analyzers, run in this order after the engines.
ALL_ANALYZERS = {
    "header_analyzer": HeaderAnalyzer,
    "tls_vulnerabilities": TLSVulnerabilityAnalyzer,
    "port_risk": PortRiskAnalyzer,
    "cve_findings": CVEAnalyzer,
    "threat_intel": ThreatIntelAnalyzer,
}

__all__ = [
    "HeaderAnalyzer", "TLSVulnerabilityAnalyzer", "PortRiskAnalyzer",
    "CVEAnalyzer", "ThreatIntelAnalyzer", "ALL_ANALYZERS",
]
