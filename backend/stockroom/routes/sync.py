# Overview: Flask API routes for catalog sync; explicit outbox flush and status.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import error_response, require_auth
from ..errors import AuthorizationError, InventoryError
from ..extensions import db
from ..services import sync_service


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


def _require_global():
    if not g.access_profile.is_global_access:
        raise AuthorizationError("Catalog sync requires global access", user_id=g.current_user_id)


@sync_bp.get("/status")
@require_auth
def sync_status():
    try:
        _require_global()
    except InventoryError as e:
        return error_response(e)
    return jsonify(sync_service.outbox_status()), 200


@sync_bp.post("/flush")
@require_auth
def flush():
    """
    Push outstanding outbox entries to the catalog service.

    Returns:
        200: Everything sent (or no gateway configured)
        502: Delivery failed; entries stay queued as FAILED
    """
    try:
        _require_global()
        result = sync_service.flush_outbox()
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Outbox flush failed")
        return jsonify({"error": "Internal server error"}), 500

    if result["failed"]:
        return jsonify({"error": "Catalog sync degraded", **result}), 502
    return jsonify(result), 200
