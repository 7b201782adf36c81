# Overview: Flask API routes for notifications (read-only listing).

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_staff
from ..errors import ProcureError
from ..services import notification_service
from ..validation import parse_bool, parse_int


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_staff
def list_notifications_route():
    """
    Query parameters:
    - type: low_stock | budget_alert | expiry_warning | completed_task
    - unread_only: true/false
    - limit (default 50, max 200), offset (default 0)
    """
    try:
        limit = min(parse_int(request.args.get("limit", "50"), "limit", minimum=1), 200)
        offset = parse_int(request.args.get("offset", "0"), "offset", minimum=0)
        rows, total = notification_service.list_notifications(
            type=request.args.get("type") or None,
            unread_only=parse_bool(request.args.get("unread_only")),
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "notifications": [n.to_dict() for n in rows],
            "total": total,
            "limit": limit,
            "offset": offset,
        })
    except ProcureError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500
