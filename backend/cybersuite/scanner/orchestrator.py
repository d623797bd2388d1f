# cybersuite/scanner/orchestrator.py
"""
Scan Orchestrator.

Coordinates the lite-scan pipeline (POST /api/vuln/lite):

    1. Resolve the URL's host through the SSRF guard (terminal on failure)
    2. Run engines: website branch (http → tls) and port scan, concurrently
    3. Collaborator lookups: CVE decision gate + NVD, OTX, Safe Browsing
    4. Run analyzers (engine data + intel → Findings)
    5. Sort findings, build the exposure summary and the risk verdict

Also builds the standalone website report (POST /api/website/scan), which
shares the fetch, TLS, reputation and scoring steps.

Usage from vuln/routes.py:
    from cybersuite.scanner.orchestrator import LiteScanOrchestrator

    orchestrator = LiteScanOrchestrator(settings=current_app.config)
    body = orchestrator.run(url=url, software=software)
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Mapping, Optional

from cybersuite.intel import nvd, otx, safe_browsing
from cybersuite.scanner.analyzers import ALL_ANALYZERS
from cybersuite.scanner.analyzers.port_risk import build_network_exposure
from cybersuite.scanner.analyzers.risk_scorer import calculate_risk
from cybersuite.scanner.analyzers.tech_detector import (
    cve_skip_reason,
    detect_cdn,
    detect_software,
    map_to_cve_search_name,
)
from cybersuite.scanner.base import EngineResult, Finding, ScanContext, now_utc
from cybersuite.scanner.engines import ALL_ENGINES
from cybersuite.scanner.engines.http_engine import LIMITATIONS, UnreachableHostError, fetch_website, host_from_url
from cybersuite.scanner.engines.tls_engine import analyze_tls
from cybersuite.scanner.target import InvalidHostError, UnresolvableHostError, resolve_target

logger = logging.getLogger(__name__)

CVE_LIMIT = 8


# ---------------------------------------------------------------------------
# Finding aggregation
# ---------------------------------------------------------------------------

def sort_findings(findings: Iterable[Finding]) -> List[Finding]:
    """
    Severity descending; CVE findings ahead of others of the same severity.
    Stable otherwise.
    """
    return sorted(findings, key=lambda f: (-f.weight, 0 if f.category == "cve" else 1))


def _setting(settings: Mapping[str, Any], key: str) -> str:
    return settings.get(key) or ""


# ---------------------------------------------------------------------------
# Lite scan
# ---------------------------------------------------------------------------

class LiteScanOrchestrator:
    """
    Runs one lite scan end to end.

    Args:
        settings:      app.config (API keys)
        engine_config: per-engine config, e.g. {"ports": {"ports": [80, 443]}}
    """

    def __init__(self, settings: Optional[Mapping[str, Any]] = None, engine_config: Optional[Dict[str, Dict[str, Any]]] = None):
        self.settings = settings or {}
        self.engine_config = engine_config or {}

    def _run_engine(self, name: str, ctx: ScanContext, **extra: Any) -> EngineResult:
        engine = ALL_ENGINES[name]()
        config = dict(self.engine_config.get(name) or {})
        config.update(extra)
        result = engine.run(ctx, config)
        ctx.engine_results[name] = result
        return result

    def _website_branch(self, ctx: ScanContext) -> None:
        http = self._run_engine("http", ctx)
        if http.success and http.data.get("https"):
            self._run_engine("tls", ctx, port=http.data.get("port", 443))

    def run(self, url: Optional[str] = None, software: Optional[str] = None) -> Dict[str, Any]:
        """
        Raises:
            ValueError:  neither url nor software given
            TargetError: the URL's host, or a redirect hop, is blocked or invalid
        """
        if not url and not software:
            raise ValueError("provide url or software")

        host = host_from_url(url)
        if url and not host:
            raise InvalidHostError(f"Invalid URL: {url}")
        ctx = ScanContext(url=url or None, host=host, software=software, started_at=now_utc())
        logger.info("Lite scan started: url=%s software=%s", url, software)

        if host:
            try:
                ctx.target = resolve_target(host)
            except UnresolvableHostError:
                logger.info("Lite scan %s: host does not resolve", host)
                return UnreachableHostError(url, "ENOTFOUND").to_dict()

        # --- Engines ---
        if ctx.target is not None:
            with ThreadPoolExecutor(max_workers=2) as pool:
                website = pool.submit(self._website_branch, ctx)
                ports = pool.submit(self._run_engine, "ports", ctx)
                website.result()
                ports.result()
        else:
            ctx.add_error("website", "no_url")
            ctx.add_error("network", "no_host")

        http = ctx.engine_results.get("http")
        if http is not None and not http.success:
            blocked = http.data.get("target_error")
            if blocked is not None:
                logger.warning("Lite scan %s: redirect to a blocked host: %s", host, blocked.details)
                raise blocked
            unreachable = http.data.get("unreachable")
            if unreachable:
                return unreachable
            ctx.add_error("website", "; ".join(http.errors) or "fetch_failed")

        ports_result = ctx.engine_results.get("ports")
        if ports_result is not None and not ports_result.success:
            ctx.add_error("network", "; ".join(ports_result.errors) or "scan_failed")

        # --- Collaborators ---
        self._lookup_cves(ctx)
        self._lookup_otx(ctx)
        self._lookup_reputation(ctx)

        # --- Analyzers ---
        findings: List[Finding] = []
        for analyzer_cls in ALL_ANALYZERS.values():
            findings.extend(analyzer_cls().run(ctx))
        ctx.findings = sort_findings(findings)

        ctx.finished_at = now_utc()
        body = self._build_response(ctx)
        logger.info(
            "Lite scan finished: host=%s findings=%d risk=%s",
            host, len(ctx.findings), body["risk_assessment"]["overall_risk"],
        )
        return body

    # -------------------------------------------------------------------
    # Collaborators
    # -------------------------------------------------------------------

    def _lookup_cves(self, ctx: ScanContext) -> None:
        server = ctx.get_engine_data("http").get("headers", {}).get("server")
        detected = detect_software(ctx.software, server, ctx.host)
        skip = cve_skip_reason(detected)
        if skip:
            logger.debug("CVE lookup skipped for %s: %s", detected.name, skip)
            ctx.intel["cves"] = {"status": "skipped", "software": detected.name, "reason": skip}
            return

        query = map_to_cve_search_name(detected.name)
        try:
            res = nvd.search_cves(query, detected.version, limit=CVE_LIMIT, api_key=_setting(self.settings, "NVD_API_KEY"))
        except Exception as e:
            logger.exception("CVE lookup failed for %s %s", query, detected.version)
            ctx.intel["cves"] = {
                "status": "error",
                "software": detected.name,
                "version": detected.version,
                "reason": "CVE lookup failed",
            }
            ctx.add_error("cve", str(e))
            return

        status = "skipped" if res.get("skipped") else "confirmed"
        ctx.intel["cves"] = dict(res, status=status, software=detected.name, version=detected.version)

    def _lookup_otx(self, ctx: ScanContext) -> None:
        if not ctx.host:
            return
        api_key = _setting(self.settings, "OTX_API_KEY")
        if ctx.target is not None and ctx.target.is_ip_literal:
            res = otx.lookup_ip(ctx.target.resolved_address, api_key=api_key)
        else:
            res = otx.lookup_domain(ctx.host, api_key=api_key)
        ctx.intel["otx"] = res
        if not res.get("ok"):
            ctx.add_error("otx", res.get("error") or "lookup failed")

    def _lookup_reputation(self, ctx: ScanContext) -> None:
        data = ctx.get_engine_data("http")
        if not data:
            return
        ctx.intel["reputation"] = safe_browsing.check_url(
            data["final_url"], api_key=_setting(self.settings, "GOOGLE_SAFE_BROWSING_API_KEY"),
        )

    # -------------------------------------------------------------------
    # Response
    # -------------------------------------------------------------------

    def _build_response(self, ctx: ScanContext) -> Dict[str, Any]:
        http = ctx.get_engine_data("http")
        tls = ctx.get_engine_data("tls")
        ports = ctx.get_engine_data("ports")
        cves = ctx.intel.get("cves") or {}
        reputation = ctx.intel.get("reputation")
        limited = http.get("scan_status") == "limited"

        site = None
        if http:
            site = {
                "status_code": http.get("status_code"),
                "final_url": http.get("final_url"),
                "https": http.get("https"),
                "redirect_chain": http.get("redirect_chain"),
                "headers_classified": http.get("headers_classified"),
                "header_exposures": http.get("header_exposures"),
                "raw_headers": http.get("raw_headers"),
                "cdn": detect_cdn(http.get("raw_headers")),
                "reputation": reputation,
            }

        risk = calculate_risk(
            headers=None if limited else http.get("headers_classified"),
            exposures=None if limited else http.get("header_exposures"),
            tls_vulnerabilities=tls.get("vulnerabilities"),
            ports=ports.get("results"),
            cves=cves.get("items") if cves.get("status") == "confirmed" else None,
            reputation=reputation,
        )

        return {
            "ok": True,
            "url": ctx.url,
            "host": ctx.host,
            "scan_status": http.get("scan_status"),
            "scan_limit_reason": http.get("scan_limit_reason"),
            "site": site,
            "tls": tls or None,
            "network": ports or None,
            "cves": cves or None,
            "findings": [f.to_dict() for f in ctx.findings],
            "network_exposure": build_network_exposure(ports.get("results")),
            "risk_assessment": risk.to_dict(),
            "errors": ctx.errors,
        }


# ---------------------------------------------------------------------------
# Website report
# ---------------------------------------------------------------------------

def run_website_scan(url: str, settings: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Header, TLS and reputation report for one URL.

    Raises the fetch errors of fetch_website(); UnreachableHostError is
    meant to be rendered with its own to_dict().
    """
    settings = settings or {}
    site = fetch_website(url)

    tls = None
    if site["https"]:
        try:
            target = resolve_target(site["host"])
            tls = analyze_tls(
                hostname=site["host"],
                port=site["port"],
                address=target.resolved_address,
                server_software=site["headers"].get("server"),
            ).to_dict()
        except Exception:
            logger.exception("TLS analysis failed for %s", site["host"])

    reputation = safe_browsing.check_url(site["final_url"], api_key=_setting(settings, "GOOGLE_SAFE_BROWSING_API_KEY"))

    risk = calculate_risk(
        headers=site["headers_classified"],
        exposures=site["header_exposures"],
        tls_vulnerabilities=(tls or {}).get("vulnerabilities"),
        reputation=reputation,
    )

    https = site["https"]
    return {
        "ok": True,
        "scan_status": site["scan_status"],
        "scan_limit_reason": site["scan_limit_reason"],
        "scan_info": {
            "original_url": site["original_url"],
            "final_url": site["final_url"],
            "protocol_used": site["protocol_used"],
            "status_code": site["status_code"],
            "redirect_chain": site["redirect_chain"],
        },
        "https_status": {
            "secure": https,
            "protocol": "HTTPS" if https else "HTTP",
            "note": "Secure communication enabled" if https else "Not using HTTPS",
        },
        "tls": tls,
        "reputation": reputation,
        "headers": site["headers_classified"],
        "header_exposures": site["header_exposures"],
        "raw_headers": site["raw_headers"],
        "csp_meta": site["csp_meta"],
        "context": {
            "active_protection": site["active_protection"],
            "cdn": detect_cdn(site["raw_headers"]),
        },
        "risk_assessment": risk.to_dict(),
        "limitations": LIMITATIONS,
    }
