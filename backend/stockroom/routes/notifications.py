# Overview: Flask API routes for notifications; polling and read receipts.

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, require_auth
from ..errors import AuthorizationError, InventoryError
from ..extensions import db
from ..services import notification_service
from ..validation import optional_int, parse_bool


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _visible_store_ids():
    profile = g.access_profile
    if profile.is_global_access:
        return None
    return set(profile.assigned_store_ids)


@notifications_bp.get("")
@require_auth
def list_notifications():
    """
    Newest first.

    Query params:
        since_id: only notifications with a larger id (incremental polling)
        unread: only unread notifications
        limit: max rows (default 100)
    """
    try:
        notifications = notification_service.list_notifications(
            store_ids=_visible_store_ids(),
            since_id=optional_int(request.args.get("since_id"), "since_id"),
            unread_only=parse_bool(request.args.get("unread", "false")),
            limit=optional_int(request.args.get("limit"), "limit") or 100,
        )
    except InventoryError as e:
        return error_response(e)
    return jsonify([n.to_dict() for n in notifications]), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read(notification_id: int):
    try:
        visible = _visible_store_ids()
        notification = notification_service.get_notification(notification_id)
        if visible is not None and notification.store_id is not None and notification.store_id not in visible:
            raise AuthorizationError(
                f"Notification {notification_id} belongs to another store",
                user_id=g.current_user_id,
                store_id=notification.store_id,
            )
        notification = notification_service.mark_read(notification_id)
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    return jsonify(notification.to_dict()), 200
