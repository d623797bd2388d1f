"""Tests for the additive risk scorer."""

import pytest

from cybersuite.scanner.analyzers.header_analyzer import classify_headers, detect_header_exposures
from cybersuite.scanner.analyzers.risk_scorer import calculate_risk, risk_level
from cybersuite.scanner.probe import PortProbeResult


class TestRiskLevel:

    @pytest.mark.parametrize("points,expected", [
        (0, ("Low", "High")),
        (2, ("Low", "High")),
        (3, ("Low", "Medium")),
        (7, ("Low", "Medium")),
        (8, ("Medium", "High")),
        (14, ("Medium", "High")),
        (15, ("High", "High")),
        (19, ("High", "High")),
        (20, ("Critical", "High")),
        (90, ("Critical", "High")),
    ])
    def test_thresholds(self, points, expected):
        assert risk_level(points) == expected


class TestCalculateRisk:

    def test_nothing_is_low(self):
        risk = calculate_risk()
        assert risk.to_dict() == {
            "overall_risk": "Low",
            "exploitable_findings": 0,
            "informational_observations": 0,
            "risk_points": 0,
            "confidence": "High",
            "breakdown": {
                "cve_findings": 0,
                "tls_vulnerabilities": 0,
                "network_exposures": 0,
                "malware_flags": 0,
                "header_exposures": 0,
                "deprecated_headers": 0,
            },
        }

    def test_missing_headers_are_informational_only(self):
        risk = calculate_risk(headers=classify_headers({}))
        assert risk.informational_observations == 11
        assert risk.exploitable_findings == 0
        assert (risk.overall_risk, risk.confidence) == ("Low", "High")

    def test_weak_headers_never_add_points(self):
        headers = classify_headers({"Strict-Transport-Security": "max-age=10", "Referrer-Policy": "unsafe-url"})
        risk = calculate_risk(headers=headers)
        assert risk.risk_points == 0
        assert risk.overall_risk == "Low"

    def test_single_critical_cve_is_at_least_medium(self):
        risk = calculate_risk(cves=[{"severity": "Critical"}])
        assert risk.risk_points == 10
        assert risk.overall_risk == "Medium"
        assert risk.exploitable_findings == 1
        assert risk.breakdown["cve_findings"] == 1

    def test_cve_points(self):
        cves = [{"severity": "CRITICAL"}, {"severity": "High"}]
        risk = calculate_risk(cves=cves)
        assert risk.risk_points == 18
        assert risk.overall_risk == "High"
        assert risk.breakdown["cve_findings"] == 2

        risk = calculate_risk(cves=cves + [{"severity": "Medium"}])
        assert risk.risk_points == 23
        assert risk.overall_risk == "Critical"

    def test_low_and_unknown_cves_do_not_count(self):
        risk = calculate_risk(cves=[{"severity": "Low"}, {"severity": "Unknown"}, {}])
        assert risk.exploitable_findings == 0
        assert risk.risk_points == 0

    def test_tls_points_only_for_vulnerable(self):
        vulns = [
            {"name": "POODLE", "status": "vulnerable", "severity": "High"},
            {"name": "BEAST", "status": "vulnerable", "severity": "Medium"},
            {"name": "Heartbleed", "status": "not_vulnerable", "severity": "Critical"},
        ]
        risk = calculate_risk(tls_vulnerabilities=vulns)
        assert risk.risk_points == 9
        assert risk.exploitable_findings == 2
        assert risk.overall_risk == "Medium"

    def test_ssh_counts_as_dangerous_and_admin(self):
        risk = calculate_risk(ports=[PortProbeResult(22, "open"), PortProbeResult(443, "open")])
        assert risk.risk_points == 10
        assert risk.exploitable_findings == 2
        assert risk.breakdown["network_exposures"] == 2
        assert risk.overall_risk == "Medium"

    def test_closed_ports_ignored(self):
        risk = calculate_risk(ports=[{"port": 3389, "status": "closed"}, {"port": 3306, "status": "open"}])
        assert risk.risk_points == 4
        assert (risk.overall_risk, risk.confidence) == ("Low", "Medium")

    def test_reputation(self):
        risk = calculate_risk(reputation={"status": "malicious", "matches": [{"threatType": "MALWARE"}]})
        assert risk.risk_points == 10
        assert risk.breakdown["malware_flags"] == 1
        assert risk.overall_risk == "Medium"

    def test_other_threat_types_are_exploitable_without_points(self):
        risk = calculate_risk(reputation=[{"threatType": "UNWANTED_SOFTWARE"}])
        assert risk.exploitable_findings == 1
        assert risk.risk_points == 0
        assert (risk.overall_risk, risk.confidence) == ("Low", "High")

    def test_deprecated_header_and_exposure(self):
        headers = {"X-XSS-Protection": "1; mode=block", "Server": "nginx/1.18.0"}
        risk = calculate_risk(
            headers=classify_headers(headers),
            exposures=detect_header_exposures(headers),
        )
        assert risk.risk_points == 5
        assert risk.breakdown["deprecated_headers"] == 1
        assert risk.breakdown["header_exposures"] == 1
        assert risk.informational_observations == 10
        assert (risk.overall_risk, risk.confidence) == ("Low", "Medium")

    def test_accepts_classification_map(self):
        headers = {c.header_name: c for c in classify_headers({"X-XSS-Protection": "0"})}
        assert calculate_risk(headers=headers).breakdown["deprecated_headers"] == 1
