# cybersuite/scanner/engines/port_engine.py
"""
Port scan orchestrator.

Fans a bounded port list out to concurrent probes (see scanner/probe.py)
and collects one open/closed verdict per port.

Every probe runs in parallel on one event loop, so the worst case is
timeout × (RETRIES + 1) plus backoff, whatever the port-list size.

Output data structure (stored in EngineResult.data, also the body of
GET /api/network/scan):
    {
        "ok": true,
        "target": "example.com",
        "address": "93.184.216.34",
        "family": 4,
        "scanned_ports": 13,
        "timeout_ms": 800,
        "retries": 2,
        "duration_ms": 1450,
        "results": [{"port": 22, "status": "open"}, ...]
    }

Profile config options:
    ports:      list[int], ports to probe (default: DEFAULT_PORTS)
    timeout_ms: int, per-attempt timeout (default: 800)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from cybersuite.scanner.base import BaseEngine, EngineResult, ScanContext
from cybersuite.scanner.probe import CLOSED, PortProbeResult, probe_port
from cybersuite.scanner.target import Target

logger = logging.getLogger(__name__)

DEFAULT_PORTS = [21, 22, 25, 53, 80, 110, 143, 443, 465, 587, 993, 995, 8080]

CONNECT_TIMEOUT_MS = 800
MIN_TIMEOUT_MS = 200
MAX_TIMEOUT_MS = 5000

RETRIES = 2                 # extra attempts while a port looks closed
RETRY_BACKOFF_SECONDS = 0.15
MAX_PORTS = 64


# ---------------------------------------------------------------------------
# Input parsing
# ---------------------------------------------------------------------------

def parse_custom_ports(raw: Optional[str]) -> Optional[List[int]]:
    """
    Parse a comma-separated port list.

    Keeps integers in 1..65535, de-duplicated in first-seen order and
    capped at MAX_PORTS. Returns None when nothing valid remains, so the
    caller falls back to DEFAULT_PORTS.
    """
    if not raw:
        return None

    ports: List[int] = []
    seen = set()
    for part in str(raw).split(","):
        part = part.strip()
        if not part:
            continue
        try:
            port = int(part)
        except ValueError:
            continue
        if 1 <= port <= 65535 and port not in seen:
            seen.add(port)
            ports.append(port)

    if not ports:
        return None
    return ports[:MAX_PORTS]


def parse_timeout(raw: Any) -> int:
    """Timeout in ms; anything outside [200, 5000] falls back to 800."""
    if raw is None or raw == "":
        return CONNECT_TIMEOUT_MS
    try:
        value = int(str(raw).strip())
    except ValueError:
        return CONNECT_TIMEOUT_MS
    if MIN_TIMEOUT_MS <= value <= MAX_TIMEOUT_MS:
        return value
    return CONNECT_TIMEOUT_MS


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------

async def _probe_with_retry(
    port: int,
    address: str,
    timeout_seconds: float,
    hostname: Optional[str],
) -> PortProbeResult:
    result = PortProbeResult(port=port, status=CLOSED)
    for attempt in range(RETRIES + 1):
        if attempt:
            await asyncio.sleep(RETRY_BACKOFF_SECONDS)
        result = await probe_port(port, address, timeout_seconds, hostname_for_header=hostname)
        if result.is_open:
            break
    return result


async def scan_ports(
    address: str,
    ports: List[int],
    timeout_ms: int = CONNECT_TIMEOUT_MS,
    hostname: Optional[str] = None,
) -> List[PortProbeResult]:
    """Probe every port concurrently. Results come back in input order."""
    timeout_seconds = timeout_ms / 1000.0
    results = await asyncio.gather(
        *(_probe_with_retry(p, address, timeout_seconds, hostname) for p in ports),
        return_exceptions=True,
    )

    out: List[PortProbeResult] = []
    for port, result in zip(ports, results):
        if isinstance(result, BaseException):
            # probe_port never raises, but one port must never sink the batch
            logger.debug("Port %s probe crashed: %s", port, result)
            result = PortProbeResult(port=port, status=CLOSED)
        out.append(result)
    return out


def run_port_scan(
    target: Target,
    ports: Optional[List[int]] = None,
    timeout_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Synchronous entry point: scan a resolved target and build the
    /api/network/scan response body.
    """
    ports = ports or DEFAULT_PORTS
    timeout_ms = timeout_ms or CONNECT_TIMEOUT_MS

    started = time.monotonic()
    loop = asyncio.new_event_loop()
    try:
        results = loop.run_until_complete(
            scan_ports(target.resolved_address, ports, timeout_ms, target.original_hostname)
        )
    finally:
        loop.close()
    duration_ms = int((time.monotonic() - started) * 1000)

    open_count = sum(1 for r in results if r.is_open)
    logger.info(
        "Port scan %s (%s): %d/%d open in %dms",
        target.original_hostname, target.resolved_address, open_count, len(ports), duration_ms,
    )

    return {
        "ok": True,
        "target": target.original_hostname,
        "address": target.resolved_address,
        "family": target.family,
        "scanned_ports": len(ports),
        "timeout_ms": timeout_ms,
        "retries": RETRIES,
        "duration_ms": duration_ms,
        "results": [r.to_dict() for r in results],
    }


class PortEngine(BaseEngine):
    """
    Connect-based port scan of the resolved target for the lite scan.

    Profile config:
        ports:      List of ports. Default DEFAULT_PORTS.
        timeout_ms: Per-attempt timeout. Default 800.
    """

    @property
    def name(self) -> str:
        return "ports"

    def execute(self, ctx: ScanContext, config: Dict[str, Any]) -> EngineResult:
        result = EngineResult(engine_name=self.name)
        result.data = run_port_scan(
            ctx.target,
            ports=config.get("ports"),
            timeout_ms=parse_timeout(config.get("timeout_ms")),
        )
        return result
