# cybersuite/scanner/analyzers/intel_findings.py
"""
Findings from the third-party lookups stored in ScanContext.intel.

    CVEAnalyzer          intel["cves"]  (confirmed NVD search) → "cve" findings
    ThreatIntelAnalyzer  intel["otx"]   (OTX domain pulses)    → one "threat-intel" finding

OTX severity by pulse count: >= 5 High, >= 2 Medium, else Low.
"""

from __future__ import annotations

import logging
from typing import List

from cybersuite.scanner.analyzers.tech_detector import DetectedSoftware, derive_software_label
from cybersuite.scanner.base import BaseAnalyzer, Finding, ScanContext

logger = logging.getLogger(__name__)

MAX_TITLE_SUMMARY = 120
MAX_EVIDENCE_PULSES = 5


def _short_summary(summary: str) -> str:
    if len(summary) > MAX_TITLE_SUMMARY:
        return summary[:MAX_TITLE_SUMMARY - 3] + "..."
    return summary


def otx_severity(count: int) -> str:
    if count >= 5:
        return "High"
    if count >= 2:
        return "Medium"
    return "Low"


class CVEAnalyzer(BaseAnalyzer):
    """One "cve" finding per item of a confirmed (version-matched) CVE search."""

    @property
    def name(self) -> str:
        return "cve_findings"

    def can_run(self, ctx: ScanContext) -> bool:
        return (ctx.intel.get("cves") or {}).get("status") == "confirmed"

    def analyze(self, ctx: ScanContext) -> List[Finding]:
        cves = ctx.intel["cves"]
        detected = DetectedSoftware(name=cves.get("software"), version=cves.get("version"))
        basis = f"Detected: {detected.name} version {detected.version}. This CVE affects that version."
        findings: List[Finding] = []

        for item in cves.get("items") or []:
            summary = item.get("summary") or ""
            findings.append(Finding(
                category="cve",
                severity=item.get("severity") or "Unknown",
                title=f"{item.get('id')} — {_short_summary(summary)}",
                detail=summary,
                evidence={
                    "nvd": item.get("nvd_url"),
                    "references": item.get("references") or [],
                    "affected_versions": item.get("affected_versions"),
                },
                extra={
                    "id": item.get("id"),
                    "confidence": "Confirmed",
                    "detection_basis": basis,
                    "software": derive_software_label(item, detected),
                    "likely_applicable": True,
                },
            ))

        logger.info("CVE findings for %s %s: %d", detected.name, detected.version, len(findings))
        return findings


class ThreatIntelAnalyzer(BaseAnalyzer):
    """Domain referenced by OTX pulses → one finding scaled by pulse count."""

    @property
    def name(self) -> str:
        return "threat_intel"

    def can_run(self, ctx: ScanContext) -> bool:
        otx = ctx.intel.get("otx") or {}
        return bool(otx.get("ok")) and (otx.get("count") or 0) > 0

    def analyze(self, ctx: ScanContext) -> List[Finding]:
        otx = ctx.intel["otx"]
        count = int(otx["count"])
        return [Finding(
            category="threat-intel",
            severity=otx_severity(count),
            title=f"Domain associated with {count} threat reports (OTX)",
            detail=f"AlienVault OTX shows {count} pulses referencing this domain.",
            evidence={"pulses": (otx.get("pulses") or [])[:MAX_EVIDENCE_PULSES]},
        )]
