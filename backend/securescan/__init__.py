# securescan/__init__.py
"""
App factory.

Configuration comes from environment variables, overridable by the
`config` mapping passed to create_app():

    SQLALCHEMY_DATABASE_URI   SQL store when set, in-memory store otherwise
    CORS_ORIGINS              comma-separated; https origins mean production
    SECRET_KEY                required in production
    SCAN_PROBE_TIMEOUT, SCAN_TLS_TIMEOUT, SCAN_HEADER_TIMEOUT,
    SCAN_HSTS_TIMEOUT, SCAN_DNS_TIMEOUT, SCAN_DEADLINE
                              see securescan.config.ScanSettings
"""

from __future__ import annotations
from flask_cors import CORS
import os
import logging
import traceback
from typing import Any, Mapping, Optional
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from .config import ENV_KEYS, ScanSettings
from .extensions import init_extensions
from .scanner.service import ScanService
from .scans import scans_bp
from .scans.routes import SERVICE_KEY
from .store import MemoryScanStore, SQLScanStore, ScanStore

error_logger = logging.getLogger("securescan.errors")


def _is_production() -> bool:
    """Detect production by checking CORS_ORIGINS for https."""
    return os.getenv("CORS_ORIGINS", "").startswith("https://")


def _configure_logging(is_prod: bool, app: Flask):
    level = logging.INFO if is_prod else logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S" if is_prod else "%H:%M:%S",
    )
    app.logger.setLevel(level)

    # Werkzeug logs every request
    logging.getLogger("werkzeug").setLevel(logging.INFO)
    # Quieten noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    store: Optional[ScanStore] = None,
    service: Optional[ScanService] = None,
) -> Flask:
    app = Flask(__name__)

    is_prod = _is_production()
    _configure_logging(is_prod, app)

    # ── CORS ────────────────────────────────────────────────────────
    cors_env = os.getenv("CORS_ORIGINS")
    if cors_env:
        cors_origins = [o.strip() for o in cors_env.split(",") if o.strip()]
    else:
        cors_origins = ["http://localhost:5000", "http://127.0.0.1:5000"]

    CORS(app, resources={
        r"/api/*": {
            "origins": cors_origins,
            "allow_headers": ["Content-Type"],
            "methods": ["GET", "POST", "OPTIONS"],
        }
    })

    # ── Secret Key ───────────────────────────────────────────────────
    secret_key = os.getenv("SECRET_KEY")
    if is_prod and not secret_key:
        raise RuntimeError(
            "SECRET_KEY environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
        )
    app.config["SECRET_KEY"] = secret_key or "dev-secret-key-change-me"

    # ── Scan settings & database ─────────────────────────────────────
    for key in ENV_KEYS:
        if os.getenv(key) is not None:
            app.config[key] = os.getenv(key)
    if os.getenv("SQLALCHEMY_DATABASE_URI"):
        app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("SQLALCHEMY_DATABASE_URI")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    if config:
        app.config.update(config)

    settings = ScanSettings.from_mapping(app.config)

    # ── Store & service ─────────────────────────────────────────────
    if service is None:
        if store is None:
            if app.config.get("SQLALCHEMY_DATABASE_URI"):
                init_extensions(app)
                store = SQLScanStore(app)
            else:
                app.logger.warning(
                    "SQLALCHEMY_DATABASE_URI not set: scans are kept in memory only"
                )
                store = MemoryScanStore()
        service = ScanService(store, settings=settings)
    app.extensions[SERVICE_KEY] = service

    # ── Blueprints ───────────────────────────────────────────────────
    app.register_blueprint(scans_bp)

    # ── Global Error Handlers ────────────────────────────────────────
    # Return clean JSON for all errors: never expose tracebacks to users.

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({
            "error": "Bad request",
            "message": str(e.description) if hasattr(e, "description") else "The request was malformed or invalid.",
        }), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({
            "error": "Not found",
            "message": "The requested resource was not found.",
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({
            "error": "Method not allowed",
            "message": "This HTTP method is not allowed for this endpoint.",
        }), 405

    @app.errorhandler(500)
    def internal_error(e):
        error_logger.error(
            "500 Internal Server Error:\n%s", traceback.format_exc()
        )
        return jsonify({
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
        }), 500

    @app.errorhandler(Exception)
    def catch_all(e):
        """Catch-all for any unhandled exception: never leak tracebacks."""
        if isinstance(e, HTTPException):
            return jsonify({"error": e.name, "message": e.description}), e.code
        error_logger.error(
            "Unhandled exception: %s\n%s", str(e), traceback.format_exc()
        )
        return jsonify({
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
        }), 500

    # ─────────────────────────────────────────────────────────────────

    @app.get("/health")
    def health():
        return jsonify(status="up and running"), 200

    return app
