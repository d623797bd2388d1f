# cybersuite/scanner/analyzers/risk_scorer.py
"""
Risk Scorer.

Combines CVE results, TLS vulnerability findings, open ports, reputation
matches and header signals into one weighted verdict.

Scoring is strictly additive over EXPLOITABLE findings only:

    CVE Critical / High / Medium                   10 / 8 / 5
    TLS vulnerability Critical / High / Medium      8 / 6 / 3
    Open port in DANGEROUS_PORTS                    4
    Open port in ADMIN_SERVICE_PORTS                6   (22 and 3389 score both)
    Reputation MALWARE / SOCIAL_ENGINEERING        10 / 10
    Header exposed (version leak)                   2
    Header deprecated                               3

Levels by points:
    >= 20 Critical, >= 15 High, >= 8 Medium (confidence High)
    >= 3  Low (confidence Medium)
    else  Low (confidence High)

not_detected and present_weak headers are informational observations:
they are counted but never add points. With zero exploitable findings the
verdict is always Low / High confidence, however many informational
observations piled up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

CVE_POINTS = {"Critical": 10, "High": 8, "Medium": 5}
TLS_POINTS = {"Critical": 8, "High": 6, "Medium": 3}

DANGEROUS_PORTS = {22, 23, 135, 139, 445, 1433, 3306, 3389}
DANGEROUS_PORT_POINTS = 4
ADMIN_SERVICE_PORTS = {22, 3389, 5900, 5800}
ADMIN_SERVICE_POINTS = 6

REPUTATION_POINTS = {"MALWARE": 10, "SOCIAL_ENGINEERING": 10}

HEADER_POINTS = {"exposed": 2, "deprecated": 3}
INFORMATIONAL_HEADER_STATUSES = {"not_detected", "present_weak"}

RISK_THRESHOLDS = [
    (20, "Critical", "High"),
    (15, "High", "High"),
    (8, "Medium", "High"),
    (3, "Low", "Medium"),
]


@dataclass
class RiskAssessment:
    overall_risk: str = "Low"
    exploitable_findings: int = 0
    informational_observations: int = 0
    risk_points: int = 0
    confidence: str = "High"
    breakdown: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_risk": self.overall_risk,
            "exploitable_findings": self.exploitable_findings,
            "informational_observations": self.informational_observations,
            "risk_points": self.risk_points,
            "confidence": self.confidence,
            "breakdown": dict(self.breakdown),
        }


def _as_dict(item: Any) -> Dict[str, Any]:
    if isinstance(item, Mapping):
        return dict(item)
    if hasattr(item, "to_dict"):
        return item.to_dict()
    return {}


def _as_list(items: Any) -> List[Dict[str, Any]]:
    if not items:
        return []
    if isinstance(items, Mapping):
        # name → classification maps
        items = items.values()
    return [_as_dict(i) for i in items]


def _reputation_matches(reputation: Union[Mapping[str, Any], Iterable[Any], None]) -> List[Dict[str, Any]]:
    if not reputation:
        return []
    if isinstance(reputation, Mapping):
        return [_as_dict(m) for m in reputation.get("matches") or []]
    return [_as_dict(m) for m in reputation]


def risk_level(points: int) -> tuple:
    """(overall_risk, confidence) for a point total."""
    for minimum, level, confidence in RISK_THRESHOLDS:
        if points >= minimum:
            return level, confidence
    return "Low", "High"


def calculate_risk(
    headers: Optional[Any] = None,
    tls_vulnerabilities: Optional[Any] = None,
    ports: Optional[Any] = None,
    cves: Optional[Any] = None,
    reputation: Optional[Any] = None,
    exposures: Optional[Any] = None,
) -> RiskAssessment:
    """
    Score one scan.

    Args:
        headers:             HeaderClassifications (list or name → classification map)
        tls_vulnerabilities: VulnerabilityFindings
        ports:               PortProbeResults or {"port", "status"} dicts
        cves:                CVE items with a "severity"
        reputation:          {"status", "matches": [{"threatType"}]} or the match list
        exposures:           HeaderExposures (status "exposed")

    Every argument accepts dataclasses or plain dicts.
    """
    exploitable = 0
    informational = 0
    points = 0
    breakdown = {
        "cve_findings": 0,
        "tls_vulnerabilities": 0,
        "network_exposures": 0,
        "malware_flags": 0,
        "header_exposures": 0,
        "deprecated_headers": 0,
    }

    # --- CVEs ---
    for cve in _as_list(cves):
        severity = str(cve.get("severity") or "").capitalize()
        if severity in CVE_POINTS:
            exploitable += 1
            points += CVE_POINTS[severity]
            breakdown["cve_findings"] += 1

    # --- TLS vulnerabilities ---
    for vuln in _as_list(tls_vulnerabilities):
        if vuln.get("status") != "vulnerable":
            continue
        exploitable += 1
        points += TLS_POINTS.get(str(vuln.get("severity") or "").capitalize(), 0)
        breakdown["tls_vulnerabilities"] += 1

    # --- Open ports ---
    for port in _as_list(ports):
        if port.get("status") != "open":
            continue
        try:
            number = int(port.get("port"))
        except (TypeError, ValueError):
            continue
        if number in DANGEROUS_PORTS:
            exploitable += 1
            points += DANGEROUS_PORT_POINTS
            breakdown["network_exposures"] += 1
        if number in ADMIN_SERVICE_PORTS:
            exploitable += 1
            points += ADMIN_SERVICE_POINTS
            breakdown["network_exposures"] += 1

    # --- Reputation ---
    for match in _reputation_matches(reputation):
        # Every match is exploitable; only malware and phishing carry points
        exploitable += 1
        points += REPUTATION_POINTS.get(str(match.get("threatType") or "").upper(), 0)
        breakdown["malware_flags"] += 1

    # --- Headers ---
    for header in _as_list(headers) + _as_list(exposures):
        status = header.get("status")
        if status in HEADER_POINTS:
            exploitable += 1
            points += HEADER_POINTS[status]
            key = "header_exposures" if status == "exposed" else "deprecated_headers"
            breakdown[key] += 1
        elif status in INFORMATIONAL_HEADER_STATUSES:
            informational += 1

    overall, confidence = risk_level(points)
    if exploitable == 0:
        overall, confidence = "Low", "High"

    assessment = RiskAssessment(
        overall_risk=overall,
        exploitable_findings=exploitable,
        informational_observations=informational,
        risk_points=points,
        confidence=confidence,
        breakdown=breakdown,
    )
    logger.debug(
        "Risk %s (%d points, %d exploitable, %d informational)",
        overall, points, exploitable, informational,
    )
    return assessment
