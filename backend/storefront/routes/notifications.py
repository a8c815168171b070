# Overview: Flask API routes for the notification inbox and admin sends.

from flask import Blueprint, current_app, g, jsonify, request

from ..actions import NOTIFICATION_ACTIONS, SendBulkNotification, SendNotification, parse_action
from ..decorators import require_admin, require_auth
from ..errors import StorefrontError, error_response, internal_error_response
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """
    The caller's notifications, newest first.

    Query params:
    - page, limit (max 50)
    - type: order | promotion | reminder | system
    - unread_only: "true" to hide read notifications
    """
    try:
        result = notification_service.list_notifications(
            g.current_user.id,
            page=request.args.get("page", type=int),
            per_page=request.args.get("limit", type=int),
            notification_type=request.args.get("type") or None,
            unread_only=request.args.get("unread_only", "false").lower() == "true",
        )
        return jsonify({
            "success": True,
            "notifications": result["items"],
            "count": result["count"],
            "unread_count": result["unread_count"],
            "pagination": result["pagination"],
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return internal_error_response()


@notifications_bp.get("/unread-count")
@require_auth
def unread_count_route():
    try:
        return jsonify({"success": True, "unread_count": notification_service.unread_count(g.current_user.id)})
    except Exception:
        current_app.logger.exception("Failed to count unread notifications")
        return internal_error_response()


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(notification_id, g.current_user.id)
        return jsonify({"success": True, "notification": notification.to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark notification read")
        return internal_error_response()


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    try:
        updated = notification_service.mark_all_read(g.current_user.id)
        return jsonify({"success": True, "updated": updated})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark notifications read")
        return internal_error_response()


@notifications_bp.post("")
@require_auth
@require_admin
def send_notification_route():
    """
    Admin send.

    Request body, by action:
    - {"action": "sendNotification", "user_id": 1, "title": "...", "message": "...",
       "type": "promotion", "order_id": 5}
    - {"action": "sendBulkNotification", "user_ids": [1, 2], "title": "...", "message": "..."}
    """
    try:
        action = parse_action(request.get_json(silent=True), NOTIFICATION_ACTIONS)

        if isinstance(action, SendNotification):
            notification = notification_service.send_notification(
                action.user_id,
                action.title,
                action.message,
                action.type,
                order_id=action.order_id,
            )
            return jsonify({"success": True, "notification": notification.to_dict()}), 201

        if isinstance(action, SendBulkNotification):
            result = notification_service.send_bulk_notification(
                action.user_ids, action.title, action.message, action.type
            )
            return jsonify({"success": True, **result}), 201

        raise TypeError(f"Unhandled notification action {type(action).__name__}")
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to send notification")
        return internal_error_response()
