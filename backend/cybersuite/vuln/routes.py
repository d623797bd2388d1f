# cybersuite/vuln/routes.py
"""
POST /api/vuln/lite

Body: {"url": "https://example.com", "software": "apache 2.4.49"}
Either field may be omitted, not both.

Website fetch, TLS analysis and port scan run concurrently, then CVE,
OTX and reputation lookups feed one sorted findings list and a risk
verdict. An unresolvable host is passed through as
{ok: false, error: "UNREACHABLE_HOST"} with status 200.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from cybersuite.scanner.orchestrator import LiteScanOrchestrator

logger = logging.getLogger(__name__)

vuln_bp = Blueprint("vuln", __name__, url_prefix="/api/vuln")


@vuln_bp.post("/lite")
def lite_scan():
    body = request.get_json(silent=True) or {}
    url = (body.get("url") or "").strip() or None
    software = (body.get("software") or "").strip() or None

    if not url and not software:
        return jsonify({"ok": False, "error": "provide url or software"}), 400

    orchestrator = LiteScanOrchestrator(
        settings=current_app.config,
        engine_config=current_app.config.get("LITE_SCAN_ENGINE_CONFIG"),
    )
    return jsonify(orchestrator.run(url=url, software=software)), 200
