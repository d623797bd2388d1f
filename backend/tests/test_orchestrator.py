"""
Tests for the lite-scan pipeline and the website report.

Engines are swapped for canned fakes in the ALL_ENGINES registry and the
intel clients are patched, so these tests exercise orchestration only.
"""

from unittest.mock import Mock

import pytest

from cybersuite.intel import nvd, otx, safe_browsing
from cybersuite.scanner import orchestrator
from cybersuite.scanner.analyzers.header_analyzer import classify_headers, detect_header_exposures
from cybersuite.scanner.base import BaseEngine, EngineResult, Finding
from cybersuite.scanner.engines import http_engine
from cybersuite.scanner.engines.http_engine import HTTPEngine, UnreachableHostError
from cybersuite.scanner.engines.tls_engine import TlsProfile
from cybersuite.scanner.orchestrator import LiteScanOrchestrator, run_website_scan, sort_findings
from cybersuite.scanner.target import BlockedTargetError, InvalidHostError, TargetError


# ============================================================================
# FIXTURES
# ============================================================================

def fake_engine(engine_name, data=None, success=True, errors=None, calls=None):
    class _Engine(BaseEngine):
        @property
        def name(self):
            return engine_name

        def execute(self, ctx, config):
            if calls is not None:
                calls.append((engine_name, dict(config)))
            return EngineResult(
                engine_name=engine_name,
                success=success,
                data=dict(data or {}),
                errors=list(errors or []),
            )

    return _Engine


def http_data(headers=None, scan_status="complete", https=True):
    headers = headers if headers is not None else {
        "Server": "nginx/1.18.0",
        "X-XSS-Protection": "1; mode=block",
    }
    return {
        "scan_status": scan_status,
        "scan_limit_reason": None if scan_status == "complete" else "blocked",
        "active_protection": scan_status != "complete",
        "original_url": "https://example.com",
        "final_url": "https://example.com/",
        "protocol_used": "https" if https else "http",
        "https": https,
        "host": "example.com",
        "port": 443 if https else 80,
        "status_code": 200,
        "redirect_chain": [],
        "headers": {k.lower(): v for k, v in headers.items()},
        "raw_headers": {k.lower(): v for k, v in headers.items()},
        "headers_classified": [c.to_dict() for c in classify_headers(headers, https)],
        "header_exposures": [e.to_dict() for e in detect_header_exposures(headers)],
        "csp_meta": None,
    }


TLS_DATA = {
    "hostname": "example.com",
    "port": 443,
    "vulnerabilities": [
        {"name": "POODLE", "cve_id": "CVE-2014-3566", "status": "vulnerable",
         "severity": "High", "description": "SSLv3 CBC padding oracle"},
        {"name": "Heartbleed", "cve_id": "CVE-2014-0160", "status": "not_vulnerable",
         "severity": "Critical", "description": "heartbeat over-read"},
    ],
}

PORTS_DATA = {
    "ok": True,
    "target": "example.com",
    "results": [{"port": 22, "status": "open"}, {"port": 443, "status": "open"}, {"port": 25, "status": "closed"}],
}

CVE_ITEM = {
    "id": "CVE-2021-23017",
    "summary": "A security issue in nginx resolver was identified",
    "cvss": 9.4,
    "severity": "Critical",
    "published": "2021-06-01",
    "nvd_url": "https://nvd.nist.gov/vuln/detail/CVE-2021-23017",
    "references": ["https://example.org/advisory"],
    "affected_versions": "0.6.18 - 1.20.0",
    "source": "NVD",
}


@pytest.fixture
def engines(monkeypatch):
    """Install fake engines; returns the list of (engine, config) calls."""
    calls = []

    def install(http=None, tls=TLS_DATA, ports=PORTS_DATA, http_success=True):
        monkeypatch.setitem(orchestrator.ALL_ENGINES, "http", fake_engine(
            "http", http if http is not None else http_data(), success=http_success, calls=calls,
        ))
        monkeypatch.setitem(orchestrator.ALL_ENGINES, "tls", fake_engine("tls", tls, calls=calls))
        monkeypatch.setitem(orchestrator.ALL_ENGINES, "ports", fake_engine("ports", ports, calls=calls))
        return calls

    return install


@pytest.fixture
def intel(monkeypatch):
    mocks = {
        "cves": Mock(return_value={
            "ok": True, "query": "nginx", "version": "1.18.0", "count": 1,
            "status": "confirmed", "items": [CVE_ITEM],
        }),
        "otx": Mock(return_value={"ok": True, "count": 3, "pulses": [{"id": "p1", "name": "Phish"}]}),
        "otx_ip": Mock(return_value={"ok": True, "count": 0, "pulses": []}),
        "reputation": Mock(return_value={"status": "safe", "matches": []}),
    }
    monkeypatch.setattr(nvd, "search_cves", mocks["cves"])
    monkeypatch.setattr(otx, "lookup_domain", mocks["otx"])
    monkeypatch.setattr(otx, "lookup_ip", mocks["otx_ip"])
    monkeypatch.setattr(safe_browsing, "check_url", mocks["reputation"])
    return mocks


@pytest.fixture
def dns(fake_dns):
    fake_dns["example.com"] = ["93.184.216.34"]
    return fake_dns


# ============================================================================
# SORTING
# ============================================================================

class TestSortFindings:

    def test_severity_then_cve_first(self):
        findings = [
            Finding(category="website", severity="Low", title="a"),
            Finding(category="network", severity="High", title="b"),
            Finding(category="cve", severity="High", title="c"),
            Finding(category="website", severity="Critical", title="d"),
            Finding(category="threat-intel", severity="High", title="e"),
        ]
        assert [f.title for f in sort_findings(findings)] == ["d", "c", "b", "e", "a"]


# ============================================================================
# LITE SCAN
# ============================================================================

class TestLiteScan:

    def test_requires_input(self):
        with pytest.raises(ValueError):
            LiteScanOrchestrator().run()

    def test_full_scan(self, dns, engines, intel):
        calls = engines()

        body = LiteScanOrchestrator(settings={"NVD_API_KEY": "nvd-key"}).run(url="https://example.com")

        assert body["ok"] is True
        assert body["host"] == "example.com"
        assert body["scan_status"] == "complete"
        assert body["errors"] == []
        assert body["site"]["final_url"] == "https://example.com/"
        assert body["site"]["reputation"] == {"status": "safe", "matches": []}
        assert body["tls"]["port"] == 443
        assert body["network"]["target"] == "example.com"
        assert body["cves"]["status"] == "confirmed"
        assert body["cves"]["software"] == "nginx"
        assert body["network_exposure"]["admin_services"] == [22]

        severities = [f["severity"] for f in body["findings"]]
        assert severities == ["Critical", "High", "High", "High", "Medium", "Low"]
        assert body["findings"][0]["category"] == "cve"
        assert body["findings"][0]["id"] == "CVE-2021-23017"
        assert body["findings"][0]["confidence"] == "Confirmed"
        assert {f["category"] for f in body["findings"]} == {"cve", "website", "network", "threat-intel"}

        # CVE 10 + TLS High 6 + port 22 (4 + 6) + deprecated header 3 + exposure 2
        assert body["risk_assessment"]["risk_points"] == 31
        assert body["risk_assessment"]["overall_risk"] == "Critical"

        intel["cves"].assert_called_once_with("nginx", "1.18.0", limit=8, api_key="nvd-key")
        assert ("tls", {"port": 443}) in calls

    def test_tls_skipped_for_plain_http(self, dns, engines, intel):
        calls = engines(http=http_data(https=False))
        body = LiteScanOrchestrator().run(url="http://example.com")
        assert [name for name, _ in calls if name == "tls"] == []
        assert body["tls"] is None

    def test_managed_infrastructure_skips_cves(self, dns, engines, intel):
        engines(http=http_data({"Server": "cloudflare"}))

        body = LiteScanOrchestrator().run(url="https://example.com")

        assert body["cves"] == {"status": "skipped", "software": "cloudflare", "reason": "Managed infrastructure detected"}
        intel["cves"].assert_not_called()
        assert all(f["category"] != "cve" for f in body["findings"])

    def test_skipped_nvd_search_is_not_confirmed(self, dns, engines, intel):
        engines()
        intel["cves"].return_value = {
            "ok": True, "query": "nginx", "version": "1.18.0", "count": 0, "items": [],
            "skipped": True, "status": "skipped", "reason": "CVE check skipped due to timeout",
        }
        body = LiteScanOrchestrator().run(url="https://example.com")
        assert body["cves"]["status"] == "skipped"
        assert body["cves"]["reason"] == "CVE check skipped due to timeout"

    def test_software_only(self, engines, intel):
        calls = engines()

        body = LiteScanOrchestrator().run(software="apache 2.4.49")

        assert calls == []
        assert body["host"] is None
        assert body["site"] is None
        assert body["tls"] is None
        assert body["network"] is None
        assert body["errors"] == [
            {"which": "website", "error": "no_url"},
            {"which": "network", "error": "no_host"},
        ]
        intel["cves"].assert_called_once_with("apache http server", "2.4.49", limit=8, api_key="")
        intel["otx"].assert_not_called()
        assert body["findings"][0]["category"] == "cve"

    def test_unresolvable_host(self, fake_dns, engines, intel):
        engines()
        body = LiteScanOrchestrator().run(url="https://no-such-host.invalid")
        assert body == UnreachableHostError("https://no-such-host.invalid", "ENOTFOUND").to_dict()

    def test_blocked_host_raises(self, engines, intel):
        engines()
        with pytest.raises(TargetError):
            LiteScanOrchestrator().run(url="http://10.0.0.1/")

    def test_blocked_ipv6_literal_raises(self, engines, intel):
        engines()
        with pytest.raises(BlockedTargetError):
            LiteScanOrchestrator().run(url="https://[::1]/")

    def test_unparseable_url_raises(self, engines, intel):
        calls = engines()
        with pytest.raises(InvalidHostError):
            LiteScanOrchestrator().run(url="https://[2606:4700::1111/")
        assert calls == []

    def test_public_ipv6_literal(self, engines, intel):
        engines()

        body = LiteScanOrchestrator(settings={"OTX_API_KEY": "otx-key"}).run(url="https://[2606:4700::1111]/")

        assert body["ok"] is True
        assert body["host"] == "2606:4700::1111"
        intel["otx_ip"].assert_called_once_with("2606:4700::1111", api_key="otx-key")
        intel["otx"].assert_not_called()

    def test_redirect_to_blocked_host_aborts_the_scan(self, dns, monkeypatch, engines, intel):
        engines()
        monkeypatch.setitem(orchestrator.ALL_ENGINES, "http", HTTPEngine)
        monkeypatch.setattr(
            http_engine, "fetch_website",
            Mock(side_effect=BlockedTargetError("Private/loopback/link-local targets are not allowed")),
        )

        with pytest.raises(BlockedTargetError) as exc:
            LiteScanOrchestrator().run(url="http://example.com")

        assert exc.value.to_dict()["error"] == "blocked_target"
        intel["cves"].assert_not_called()
        intel["reputation"].assert_not_called()

    def test_unreachable_website_passes_through(self, dns, engines, intel):
        unreachable = UnreachableHostError("https://example.com", "NETWORK_ERROR").to_dict()
        engines(http={"unreachable": unreachable}, http_success=False)
        assert LiteScanOrchestrator().run(url="https://example.com") == unreachable

    def test_limited_scan_keeps_headers_out_of_the_score(self, dns, engines, intel):
        engines(http=http_data(scan_status="limited"), tls={}, ports={"results": []})
        intel["cves"].return_value = {"ok": True, "status": "confirmed", "count": 0, "items": []}
        intel["otx"].return_value = {"ok": True, "count": 0, "pulses": []}

        body = LiteScanOrchestrator().run(url="https://example.com")

        assert body["scan_status"] == "limited"
        assert body["findings"] == []
        assert body["risk_assessment"]["risk_points"] == 0
        assert body["risk_assessment"]["informational_observations"] == 0

    def test_collaborator_failures_are_reported(self, dns, engines, intel):
        engines()
        intel["cves"].side_effect = RuntimeError("boom")
        intel["otx"].return_value = {"ok": False, "error": "timeout"}

        body = LiteScanOrchestrator().run(url="https://example.com")

        assert body["ok"] is True
        assert body["cves"]["status"] == "error"
        assert {"which": "cve", "error": "boom"} in body["errors"]
        assert {"which": "otx", "error": "timeout"} in body["errors"]
        assert all(f["category"] not in ("cve", "threat-intel") for f in body["findings"])

    def test_failed_port_scan_is_reported(self, dns, monkeypatch, engines, intel):
        engines()
        monkeypatch.setitem(orchestrator.ALL_ENGINES, "ports", fake_engine("ports", success=False, errors=["no route"]))

        body = LiteScanOrchestrator().run(url="https://example.com")

        assert body["network"] is None
        assert {"which": "network", "error": "no route"} in body["errors"]

    def test_engine_config_reaches_engines(self, dns, engines, intel):
        calls = engines()
        LiteScanOrchestrator(engine_config={"ports": {"ports": [8443]}}).run(url="https://example.com")
        assert ("ports", {"ports": [8443]}) in calls


# ============================================================================
# WEBSITE REPORT
# ============================================================================

class TestWebsiteScan:

    def test_report(self, monkeypatch, dns, intel):
        site = http_data()
        site["raw_headers"]["cf-ray"] = "abc"
        monkeypatch.setattr(orchestrator, "fetch_website", Mock(return_value=site))
        analyze = Mock(return_value=TlsProfile(hostname="example.com"))
        monkeypatch.setattr(orchestrator, "analyze_tls", analyze)

        report = run_website_scan("example.com", settings={"GOOGLE_SAFE_BROWSING_API_KEY": "k"})

        assert report["ok"] is True
        assert report["scan_info"]["final_url"] == "https://example.com/"
        assert report["https_status"] == {"secure": True, "protocol": "HTTPS", "note": "Secure communication enabled"}
        assert report["tls"]["hostname"] == "example.com"
        assert report["context"] == {"active_protection": False, "cdn": "Cloudflare"}
        assert len(report["headers"]) == 11
        assert report["limitations"]
        assert report["risk_assessment"]["breakdown"]["deprecated_headers"] == 1

        assert analyze.call_args[1]["address"] == "93.184.216.34"
        intel["reputation"].assert_called_once_with("https://example.com/", api_key="k")

    def test_tls_failure_does_not_fail_report(self, monkeypatch, dns, intel):
        monkeypatch.setattr(orchestrator, "fetch_website", Mock(return_value=http_data()))
        monkeypatch.setattr(orchestrator, "analyze_tls", Mock(side_effect=OSError("reset")))

        report = run_website_scan("example.com")

        assert report["tls"] is None
        assert report["ok"] is True

    def test_plain_http(self, monkeypatch, dns, intel):
        monkeypatch.setattr(orchestrator, "fetch_website", Mock(return_value=http_data(https=False)))
        analyze = Mock()
        monkeypatch.setattr(orchestrator, "analyze_tls", analyze)

        report = run_website_scan("http://example.com")

        assert report["https_status"]["secure"] is False
        assert report["https_status"]["protocol"] == "HTTP"
        analyze.assert_not_called()
