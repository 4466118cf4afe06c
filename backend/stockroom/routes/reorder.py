# backend/stockroom/routes/reorder.py
"""
Replenishment routes: reorder suggestions and the purchase orders they
produce.

SECURITY: All routes require an X-User-Id caller.
- Suggestions need view_reports on the store
- Order reads need access to the store
- Creating, submitting, receiving and cancelling orders need manage_stock
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import (
    error_response,
    require_auth,
    require_store_access,
    require_store_permission,
    scoped_store_ids,
)
from ..errors import InventoryError, ValidationError
from ..extensions import db
from ..permissions import StoreAction
from ..services import reorder_service
from ..validation import coerce_int, optional_int


reorder_bp = Blueprint("reorder", __name__, url_prefix="/api/reorder")
purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@reorder_bp.get("/suggestions")
@require_auth
def list_suggestions():
    """
    Reorder suggestions for a store (store_id required).

    Returns:
        200: {"suggestions": [...], "total_estimated_cost_cents": int}
    """
    try:
        store_id = coerce_int(request.args.get("store_id"), "store_id")
        require_store_permission(store_id, StoreAction.VIEW_REPORTS)
        suggestions = reorder_service.suggest_all(store_id)
    except InventoryError as e:
        return error_response(e)

    return jsonify({
        "store_id": store_id,
        "suggestions": [s.to_dict() for s in suggestions],
        "total_estimated_cost_cents": sum(s.estimated_cost_cents for s in suggestions),
    }), 200


@reorder_bp.post("")
@require_auth
def create_reorder():
    """
    Create DRAFT purchase orders from the store's suggestions.

    Request body:
    {
        "store_id": int,
        "article_ids": [int, ...] (optional)
    }

    Returns:
        201: {"purchase_orders": [...], "items_processed": int}
        400: Nothing to reorder / invalid request
        403: Missing manage_stock
    """
    data = request.get_json(silent=True) or {}

    try:
        article_ids = data.get("article_ids")
        if article_ids is not None:
            if not isinstance(article_ids, list):
                raise ValidationError("article_ids must be a list")
            article_ids = [coerce_int(a, "article_ids") for a in article_ids]
        orders = reorder_service.process_reorder(
            store_id=coerce_int(data["store_id"], "store_id"),
            actor_id=g.current_user_id,
            article_ids=article_ids,
        )
        return jsonify({
            "purchase_orders": [o.to_dict() for o in orders],
            "items_processed": sum(len(o.lines) for o in orders),
        }), 201
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Reorder failed")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("")
@require_auth
def list_purchase_orders():
    """Query params: store_id, status, limit."""
    try:
        store_id = optional_int(request.args.get("store_id"), "store_id")
        require_store_access(store_id)
        orders = reorder_service.list_purchase_orders(
            store_id=store_id,
            status=request.args.get("status"),
            store_ids=scoped_store_ids(store_id),
            limit=optional_int(request.args.get("limit"), "limit") or 100,
        )
    except InventoryError as e:
        return error_response(e)

    return jsonify([o.to_dict() for o in orders]), 200


@purchase_orders_bp.get("/<int:po_id>")
@require_auth
def get_purchase_order(po_id: int):
    try:
        po = reorder_service.get_purchase_order(po_id)
        require_store_access(po.store_id)
    except InventoryError as e:
        return error_response(e)
    return jsonify(po.to_dict()), 200


def _transition(po_id: int, action: str):
    data = request.get_json(silent=True) or {}
    try:
        if action == "submit":
            po = reorder_service.submit_purchase_order(po_id, g.current_user_id)
        elif action == "receive":
            po = reorder_service.receive_purchase_order(po_id, g.current_user_id)
        else:
            po = reorder_service.cancel_purchase_order(po_id, g.current_user_id, reason=data.get("reason"))
        return jsonify(po.to_dict()), 200
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to %s purchase order %s", action, po_id)
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:po_id>/submit")
@require_auth
def submit_purchase_order(po_id: int):
    """DRAFT -> SUBMITTED."""
    return _transition(po_id, "submit")


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_auth
def receive_purchase_order(po_id: int):
    """SUBMITTED -> RECEIVED; posts one `in` movement per line."""
    return _transition(po_id, "receive")


@purchase_orders_bp.post("/<int:po_id>/cancel")
@require_auth
def cancel_purchase_order(po_id: int):
    """
    DRAFT | SUBMITTED -> CANCELLED.

    Request body (optional): {"reason": str}
    """
    return _transition(po_id, "cancel")
