# cybersuite/network/routes.py
"""
Port scan route.

GET /api/network/scan
    target   host name or IP literal (required)
    ports    comma-separated list, 1..65535, at most 64 (default: 13 common ports)
    timeout  per-attempt connect timeout in ms, 200..5000 (default 800)

Rate limited per client address (SCAN_RATE_LIMIT per SCAN_RATE_WINDOW_SECONDS).
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from cybersuite.scanner.engines.port_engine import parse_custom_ports, parse_timeout, run_port_scan
from cybersuite.scanner.target import resolve_target
from cybersuite.utils.rate_limit import SlidingWindowLimiter

logger = logging.getLogger(__name__)

network_bp = Blueprint("network", __name__, url_prefix="/api/network")


def _limiter() -> SlidingWindowLimiter:
    limiter = current_app.extensions.get("scan_rate_limiter")
    if limiter is None:
        limiter = SlidingWindowLimiter(
            max_requests=current_app.config["SCAN_RATE_LIMIT"],
            window_seconds=current_app.config["SCAN_RATE_WINDOW_SECONDS"],
        )
        current_app.extensions["scan_rate_limiter"] = limiter
    return limiter


@network_bp.before_request
def rate_limit():
    client = request.remote_addr or "unknown"
    if not _limiter().allow(client):
        logger.warning("Rate limit hit for %s on %s", client, request.path)
        return jsonify({
            "ok": False,
            "error": "rate_limited",
            "message": "Too many scan requests. Please try again later.",
        }), 429
    return None


@network_bp.get("/scan")
def scan():
    # TargetError propagates to the app-level handler (400)
    target = resolve_target(request.args.get("target"))
    ports = parse_custom_ports(request.args.get("ports"))
    timeout_ms = parse_timeout(request.args.get("timeout"))

    return jsonify(run_port_scan(target, ports=ports, timeout_ms=timeout_ms)), 200
