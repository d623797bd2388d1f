# cybersuite/website/routes.py
"""
POST /api/website/scan

Body: {"url": "example.com"}

Responses:
    200  full report (scan_status "complete" or "limited")
    200  {ok: false, error: "UNREACHABLE_HOST", message, context}
    400  missing/invalid URL, or a private/blocked host
    502  {ok: false, error: "fetch_failed", message}
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from cybersuite.scanner.engines.http_engine import FetchError
from cybersuite.scanner.orchestrator import run_website_scan

logger = logging.getLogger(__name__)

website_bp = Blueprint("website", __name__, url_prefix="/api/website")


@website_bp.post("/scan")
def scan():
    body = request.get_json(silent=True) or {}
    url = body.get("url")
    if not url or not isinstance(url, str):
        return jsonify({"ok": False, "error": "URL required"}), 400

    try:
        report = run_website_scan(url.strip(), settings=current_app.config)
    except ValueError as e:
        return jsonify({"ok": False, "error": "Invalid URL", "details": str(e)}), 400
    except FetchError as e:
        logger.info("Website scan of %s: %s", url, e.code)
        return jsonify(e.to_dict()), e.status_code

    return jsonify(report), 200
