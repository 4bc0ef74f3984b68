"""
Controller webhook endpoint
"""

from flask import Blueprint, jsonify, request

from room_access.services.container import get_services
from room_access.services.event_normalizer import normalize_webhook
from room_access.shared.logger import app_logger
from room_access.shared.time_utils import utc_now

bp = Blueprint("webhook", __name__, url_prefix="/api")


@bp.route("/dahua-webhook", methods=["POST"])
def dahua_webhook():
    """Decide access for one controller event"""
    try:
        body = request.get_data(cache=False)
        app_logger.info(
            f"[WEBHOOK] Event received: {len(body)} bytes, "
            f"content type {request.content_type or 'none'}"
        )

        event = normalize_webhook(body, request.content_type)
        response = get_services().decisions.process_event(event)
        return jsonify(response)

    except Exception as e:
        app_logger.error(f"[WEBHOOK] Error processing Dahua webhook: {e}", exc_info=True)
        return jsonify(
            {
                "success": False,
                "accessGranted": False,
                "reason": "Internal error processing event",
                "timestamp": utc_now().isoformat(),
            }
        ), 500
