"""
Read-only endpoints behind the dashboard
"""

import os

from flask import Blueprint, jsonify, request

from room_access.services.container import get_services
from room_access.shared.logger import app_logger
from room_access.shared.time_utils import utc_now

bp = Blueprint("dashboard", __name__, url_prefix="/api")

DEFAULT_LOG_LIMIT = 50


@bp.route("/health", methods=["GET"])
def health():
    try:
        services = get_services()
        records = services.health.get_all()
        return jsonify(
            {
                "status": "healthy",
                "timestamp": utc_now().isoformat(),
                "services": {
                    record.service: {
                        "status": record.status,
                        "lastCheck": record.to_dict()["lastCheck"],
                        "details": record.details,
                    }
                    for record in records
                },
                "scheduledJobs": services.scheduler.get_jobs() if services.scheduler else [],
                "environment": {
                    "flask_env": os.getenv("FLASK_ENV", "development"),
                    "port": services.config.port,
                },
            }
        )
    except Exception as e:
        app_logger.error(f"Health endpoint failed: {e}", exc_info=True)
        return jsonify({"status": "unhealthy", "error": "Internal error reading health"}), 500


@bp.route("/access-logs", methods=["GET"])
def access_logs():
    """Most recent access decisions first"""
    try:
        limit = request.args.get("limit", DEFAULT_LOG_LIMIT, type=int)
        if limit is None or limit < 0:
            return jsonify({"error": "limit must be a non-negative integer"}), 400

        logs = get_services().access_logs.get_recent(limit)
        return jsonify([log.to_dict() for log in logs])
    except Exception as e:
        app_logger.error(f"Error getting access logs: {e}", exc_info=True)
        return jsonify({"error": "Internal error getting access logs"}), 500


@bp.route("/system-health", methods=["GET"])
def system_health():
    try:
        return jsonify([record.to_dict() for record in get_services().health.get_all()])
    except Exception as e:
        app_logger.error(f"Error getting system health: {e}", exc_info=True)
        return jsonify({"error": "Internal error getting system health"}), 500


@bp.route("/dashboard/metrics", methods=["GET"])
def dashboard_metrics():
    try:
        return jsonify(get_services().health_service.get_dashboard_metrics())
    except Exception as e:
        app_logger.error(f"Error computing dashboard metrics: {e}", exc_info=True)
        return jsonify({"error": "Internal error computing metrics"}), 500
