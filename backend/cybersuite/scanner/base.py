# cybersuite/scanner/base.py
"""
Base classes for the recon pipeline.

Architecture:
    ScanContext flows through:  Engines → Analyzers → Findings

BaseEngine:   Collects raw observations from the target (ports, TLS, HTTP).
              Engines NEVER classify severity; they only gather facts.

BaseAnalyzer: Interprets raw engine data and produces Findings with
              severity classification.
              Analyzers NEVER open sockets; they only interpret data.

This separation means:
  - Header and vulnerability rules can be tested as pure functions
  - Each component can fail independently without crashing the whole scan
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from cybersuite.scanner.target import Target

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_utc() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


SEVERITY_WEIGHT = {
    "Critical": 4,
    "High": 3,
    "Medium": 2,
    "Low": 1,
}


def severity_weight(severity: Optional[str]) -> int:
    if not severity:
        return 0
    return SEVERITY_WEIGHT.get(severity.capitalize(), 0)


# ---------------------------------------------------------------------------
# Data structures: these flow through the entire pipeline
# ---------------------------------------------------------------------------

@dataclass
class EngineResult:
    """
    Standardized output from any engine run.

    Fields:
        engine_name:      Which engine produced this (e.g., "ports", "tls", "http")
        success:          Did the engine complete without fatal errors?
        data:             Raw collected data, structure varies per engine.
        errors:           Non-fatal error messages
        duration_seconds: Wall-clock time the engine took
    """
    engine_name: str
    success: bool = True
    data: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def add_error(self, msg: str):
        self.errors.append(msg)


@dataclass
class Finding:
    """
    A normalized, severity-sortable observation.

    Used both by the risk scorer and the caller-facing report.

    Fields:
        category:  network, cve, website, threat-intel
        severity:  Critical, High, Medium, Low, Informational
        title:     Human-readable title
        detail:    What was found
        evidence:  Supporting data (port, header, pulses, NVD link...)
        extra:     Category-specific top-level fields (id, port, service, confidence)
    """
    category: str
    severity: str
    title: str
    detail: str = ""
    evidence: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)
    detected_at: Optional[datetime] = None

    def __post_init__(self):
        if self.detected_at is None:
            self.detected_at = now_utc()

    @property
    def weight(self) -> int:
        return severity_weight(self.severity)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "category": self.category,
            "severity": self.severity,
            "title": self.title,
            "detail": self.detail,
            "evidence": self.evidence,
        }
        out.update(self.extra)
        return out


@dataclass
class ScanContext:
    """
    The data bag that flows through the lite-scan pipeline.

    Created by the orchestrator at the start of a scan. Engines write their
    results into engine_results. Analyzers read from engine_results and write
    their findings into findings.
    """
    # Target (set once, never changed)
    url: Optional[str]
    host: Optional[str]
    target: Optional[Target] = None
    software: Optional[str] = None

    # Engine outputs (populated as engines complete)
    engine_results: Dict[str, EngineResult] = field(default_factory=dict)

    # Analyzer outputs
    findings: List[Finding] = field(default_factory=list)

    # Collaborator outputs (CVE, reputation, OTX)
    intel: Dict[str, Any] = field(default_factory=dict)

    errors: List[Dict[str, str]] = field(default_factory=list)

    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def get_engine_data(self, engine_name: str) -> Dict[str, Any]:
        """
        Get raw data from a specific engine.
        Returns empty dict if engine didn't run or failed.
        """
        result = self.engine_results.get(engine_name)
        if result and result.success:
            return result.data
        return {}

    def has_engine_data(self, engine_name: str) -> bool:
        result = self.engine_results.get(engine_name)
        return result is not None and result.success and bool(result.data)

    def add_error(self, which: str, error: str):
        self.errors.append({"which": which, "error": error})


# ---------------------------------------------------------------------------
# Abstract base classes
# ---------------------------------------------------------------------------

class BaseEngine(ABC):
    """
    Abstract base for data collection engines.

    The base class handles automatically:
        - Timing (duration_seconds is set automatically)
        - Error catching (exceptions become EngineResult with success=False)
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    def can_scan(self, ctx: ScanContext) -> bool:
        return ctx.target is not None

    def run(self, ctx: ScanContext, config: Dict[str, Any] | None = None) -> EngineResult:
        """
        Execute the engine with automatic timing and error handling.

        DO NOT OVERRIDE THIS METHOD. Override `execute()` instead.
        """
        if not self.can_scan(ctx):
            return EngineResult(
                engine_name=self.name,
                success=False,
                errors=[f"Engine '{self.name}' has no target to scan"],
            )

        config = config or {}
        result = EngineResult(engine_name=self.name)
        start = time.monotonic()

        try:
            result = self.execute(ctx, config)
            result.engine_name = self.name
        except Exception as e:
            logger.exception("Engine '%s' failed for %s", self.name, ctx.host)
            result = EngineResult(
                engine_name=self.name,
                success=False,
                errors=[f"{type(e).__name__}: {str(e)}"],
            )
        finally:
            result.duration_seconds = round(time.monotonic() - start, 2)

        return result

    @abstractmethod
    def execute(self, ctx: ScanContext, config: Dict[str, Any]) -> EngineResult:
        ...


class BaseAnalyzer(ABC):
    """
    Abstract base for finding analyzers.

    The base class handles automatically:
        - Checking if required engine data exists (skips gracefully if not)
        - Error catching (exceptions return empty list, never crash the scan)
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    def required_engines(self) -> List[str]:
        """
        Which engines must have data for this analyzer to run.
        Uses OR logic: analyzer runs if ANY of these have data.
        """
        return []

    def can_run(self, ctx: ScanContext) -> bool:
        if not self.required_engines:
            return True
        return any(ctx.has_engine_data(e) for e in self.required_engines)

    def run(self, ctx: ScanContext) -> List[Finding]:
        """
        Execute the analyzer with error handling.

        DO NOT OVERRIDE THIS METHOD. Override `analyze()` instead.
        """
        if not self.can_run(ctx):
            logger.debug(
                "Analyzer '%s' skipped: no data from required engines %s",
                self.name, self.required_engines,
            )
            return []

        try:
            return self.analyze(ctx)
        except Exception:
            logger.exception("Analyzer '%s' failed for %s", self.name, ctx.host)
            return []

    @abstractmethod
    def analyze(self, ctx: ScanContext) -> List[Finding]:
        ...
