"""
Core service endpoints blueprint.

This blueprint handles service-level routes:
- Health check with storage status
- Metrics in JSON and Prometheus text format
"""

from flask import Blueprint, Response, jsonify

from ledger_config import __version__
from ledger_records import DISTRIBUTOR_KEY
from monitoring import metrics

from . import state

# Create the blueprint
core_bp = Blueprint("core", __name__)


@core_bp.route("/health", methods=["GET"])
def health():
    """
    Basic health check endpoint.

    Returns service status, version and storage information.
    """
    body = {
        "status": "healthy",
        "service": "RevLedger API",
        "version": __version__,
        "ready": state.services.is_ready(),
    }

    if state.services.is_ready():
        distributor = state.services.distributor
        storage = distributor.store.get_info()
        body["storage"] = storage
        body["initialized"] = distributor.store.get(DISTRIBUTOR_KEY) is not None
        if not storage.get("available", False):
            body["status"] = "degraded"

    return jsonify(body)


@core_bp.route("/metrics", methods=["GET"])
def json_metrics():
    """All collected metrics as JSON."""
    return jsonify(metrics.get_all())


@core_bp.route("/metrics/prometheus", methods=["GET"])
def prometheus_metrics():
    """Metrics in Prometheus text exposition format."""
    return Response(metrics.to_prometheus(), mimetype="text/plain; charset=utf-8")
