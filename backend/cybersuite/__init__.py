# cybersuite/__init__.py
"""
App factory.

    - Settings from the environment (config.py), overridable per app for tests
    - CORS origins read from CORS_ORIGINS (localhost dev origins otherwise)
    - Production-appropriate logging levels
    - JSON error handlers; tracebacks are logged, never returned
"""

from __future__ import annotations

import logging
import re
import traceback
from typing import Any, Mapping, Optional

from flask import Flask, jsonify
from flask_cors import CORS

from cybersuite import config
from cybersuite.cve import cve_bp
from cybersuite.intel import configure_caches
from cybersuite.network import network_bp
from cybersuite.scanner.target import TargetError
from cybersuite.vuln import vuln_bp
from cybersuite.website import website_bp

error_logger = logging.getLogger("cybersuite.errors")


def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    app = Flask(__name__)

    is_prod = config.is_production()

    # ── Logging ──────────────────────────────────────────────────────
    if is_prod:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        app.logger.setLevel(logging.INFO)
    else:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        )
        app.logger.setLevel(logging.DEBUG)

    logging.getLogger("werkzeug").setLevel(logging.INFO)
    # Quieten noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    # ─────────────────────────────────────────────────────────────────

    # ── Settings ─────────────────────────────────────────────────────
    app.config.update(config.load_config())
    if overrides:
        app.config.update(overrides)

    configure_caches(app.config["CACHE_TTL_SECONDS"])

    log = logging.getLogger(__name__)
    for key in ("OTX_API_KEY", "GOOGLE_SAFE_BROWSING_API_KEY", "NVD_API_KEY"):
        log.info("%s: %s", key, config.key_status(app.config.get(key)))

    # ── CORS ─────────────────────────────────────────────────────────
    # Production: set CORS_ORIGINS="https://cybersuite.example" in .env
    cors_origins = config.cors_origins() or [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        re.compile(r"http://192\.168\.\d+\.\d+:(3000|5173)"),
    ]

    CORS(app, resources={
        r"/*": {
            "origins": cors_origins,
            "allow_headers": ["Content-Type"],
            "methods": ["GET", "POST", "OPTIONS"],
        }
    })

    # ── Blueprints ───────────────────────────────────────────────────
    app.register_blueprint(network_bp)
    app.register_blueprint(vuln_bp)
    app.register_blueprint(website_bp)
    app.register_blueprint(cve_bp)

    # ── Global Error Handlers ────────────────────────────────────────
    # Clean JSON for all errors; details go to the server log only.

    @app.errorhandler(TargetError)
    def target_error(e: TargetError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({
            "ok": False,
            "error": "Bad request",
            "message": str(e.description) if hasattr(e, "description") else "The request was malformed or invalid.",
        }), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({
            "ok": False,
            "error": "Not found",
            "message": "The requested resource was not found.",
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({
            "ok": False,
            "error": "Method not allowed",
            "message": "This HTTP method is not allowed for this endpoint.",
        }), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({
            "ok": False,
            "error": "rate_limited",
            "message": "Rate limit exceeded. Please try again later.",
        }), 429

    @app.errorhandler(500)
    def internal_error(e):
        error_logger.error("500 Internal Server Error:\n%s", traceback.format_exc())
        return jsonify({
            "ok": False,
            "error": "internal_error",
            "message": "An unexpected error occurred. Please try again later.",
        }), 500

    @app.errorhandler(Exception)
    def catch_all(e):
        """Catch-all for any unhandled exception. Never leaks tracebacks."""
        code = getattr(e, "code", None)
        if isinstance(code, int) and 400 <= code < 500:
            return jsonify({"ok": False, "error": getattr(e, "name", "error")}), code
        error_logger.error("Unhandled exception: %s\n%s", str(e), traceback.format_exc())
        return jsonify({
            "ok": False,
            "error": "internal_error",
            "message": "An unexpected error occurred. Please try again later.",
        }), 500

    # ─────────────────────────────────────────────────────────────────

    @app.get("/health")
    def health():
        return jsonify(status="up and running"), 200

    return app


def main() -> None:
    """Development server entry point (`cybersuite` console script)."""
    app = create_app()
    app.run(host="0.0.0.0", port=app.config["PORT"], debug=not config.is_production())
