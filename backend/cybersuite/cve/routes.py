# cybersuite/cve/routes.py
"""
GET /api/cve/search?q=apache&version=2.4.49&limit=10

Without a version the search is skipped (ok: true, skipped: true).
limit is clamped to 1..100.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from cybersuite.intel.nvd import search_cves

logger = logging.getLogger(__name__)

cve_bp = Blueprint("cve", __name__, url_prefix="/api/cve")

DEFAULT_LIMIT = 10


@cve_bp.get("/search")
def search():
    q = (request.args.get("q") or request.args.get("query") or "").strip()
    version = (request.args.get("version") or "").strip() or None

    if not q:
        return jsonify({"ok": False, "error": "missing_query"}), 400

    try:
        limit = int(request.args.get("limit", DEFAULT_LIMIT))
    except ValueError:
        limit = DEFAULT_LIMIT

    result = search_cves(q, version, limit=limit, api_key=current_app.config.get("NVD_API_KEY") or "")
    return jsonify(result), 200
