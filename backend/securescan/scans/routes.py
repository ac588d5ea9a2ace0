# =============================================================================
# File: securescan/scans/routes.py
# Description: Scan routes: submit a target URL, fetch a scan with results.
#   POST /api/scans        accept a scan, run it in the background
#   GET  /api/scans/<id>   the scan plus ports, vulnerabilities, TLS,
#                          headers and cloud findings gathered so far
# =============================================================================

from __future__ import annotations
import logging
from flask import Blueprint, current_app, jsonify, request

from securescan.errors import InvalidTargetURL
from securescan.scanner.service import ScanService

logger = logging.getLogger(__name__)

scans_bp = Blueprint("scans", __name__, url_prefix="/api/scans")

SERVICE_KEY = "securescan.service"


def get_scan_service() -> ScanService:
    return current_app.extensions[SERVICE_KEY]


@scans_bp.post("")
def create_scan():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify(error="Invalid request data"), 400

    url = body.get("url")
    if not isinstance(url, str) or not url.strip():
        return jsonify(error="Invalid request data"), 400

    try:
        handle = get_scan_service().start_scan(url)
    except InvalidTargetURL:
        return jsonify(error="Invalid URL format"), 400

    return jsonify(handle.scan.to_dict()), 200


@scans_bp.get("/<scan_id>")
def get_scan(scan_id: str):
    view = get_scan_service().get_scan(scan_id)
    if view is None:
        return jsonify(error="Scan not found"), 404
    return jsonify(view.to_dict()), 200
