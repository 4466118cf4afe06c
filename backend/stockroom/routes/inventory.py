# backend/stockroom/routes/inventory.py
"""
Stock ledger and projection routes.

SECURITY: All routes require an X-User-Id caller.
- Ledger reads are limited to stores the caller can access
- Stock levels and summaries require view_reports on the store
- Appends and counts require manage_stock on the store
- Plain appends are in/out only; transfer legs come from /api/transfers
- Threshold changes require edit or manage_stock on the store
- Projection rebuilds require global access

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- since/until filtering is inclusive.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import (
    error_response,
    require_auth,
    require_store_access,
    require_store_permission,
    scoped_store_ids,
)
from ..errors import AuthorizationError, InventoryError, ValidationError
from ..extensions import db
from ..models import StockMovement
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from ..permissions import StoreAction
from ..services import access_service, inventory_service, ledger_service
from ..validation import MOVEMENT_POLICY, coerce_int, optional_int, validate_payload


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/movements")
@require_auth
def list_movements_route():
    """
    Ledger entries, oldest first.

    Query params: store_id, article_id, since, until, movement_type,
    reference_id, limit
    """
    try:
        store_id = optional_int(request.args.get("store_id"), "store_id")
        require_store_access(store_id)
        movements = ledger_service.get_movements(
            store_id=store_id,
            article_id=optional_int(request.args.get("article_id"), "article_id"),
            since=request.args.get("since"),
            until=request.args.get("until"),
            movement_type=request.args.get("movement_type"),
            reference_id=request.args.get("reference_id"),
            store_ids=scoped_store_ids(store_id),
            limit=optional_int(request.args.get("limit"), "limit"),
        )
    except InventoryError as e:
        return error_response(e)

    return jsonify([m.to_dict() for m in movements]), 200


@inventory_bp.post("/movements")
@require_auth
def create_movement_route():
    """
    Append a stock movement.

    Request body:
    {
        "store_id": int,
        "article_id": int,
        "movement_type": "in" | "out",
        "quantity": int,
        "notes": str (optional),
        "reference_type": str (optional),
        "reference_id": str (optional)
    }

    Returns:
        201: {"movement": ..., "stock": int}
        400: Invalid request
        403: Missing manage_stock on the store
        404: Unknown store or article
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=StockMovement, payload=payload, policy=MOVEMENT_POLICY)
        if patch["movement_type"] not in (MOVEMENT_IN, MOVEMENT_OUT):
            raise ValidationError("movement_type must be in or out; use /api/transfers to move stock between stores")
        movement = ledger_service.append(
            store_id=patch["store_id"],
            article_id=patch["article_id"],
            movement_type=patch["movement_type"],
            quantity=patch["quantity"],
            actor_id=g.current_user_id,
            notes=patch.get("notes"),
            reference_type=patch.get("reference_type"),
            reference_id=patch.get("reference_id"),
        )
        return jsonify({
            "movement": movement.to_dict(),
            "stock": inventory_service.get_on_hand(movement.store_id, movement.article_id),
        }), 201
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to append stock movement")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stock")
@require_auth
def list_stock_route():
    """Projection rows (optionally for one store) with effective min stock."""
    try:
        store_id = optional_int(request.args.get("store_id"), "store_id")
        if store_id is not None:
            require_store_permission(store_id, StoreAction.VIEW_REPORTS)
    except InventoryError as e:
        return error_response(e)

    rows = inventory_service.get_store_stock(store_id)
    rows = access_service.filter_permitted(g.access_profile, rows, StoreAction.VIEW_REPORTS)
    return jsonify([row.to_dict() for row in rows]), 200


@inventory_bp.put("/stock/<int:article_id>/min-stock")
@require_auth
def set_min_stock_route(article_id: int):
    """
    Set or clear a store's reorder threshold for an article.

    Request body:
    {
        "store_id": int,
        "min_stock": int | null
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        row = inventory_service.set_min_stock(
            store_id=coerce_int(data["store_id"], "store_id"),
            article_id=article_id,
            min_stock=optional_int(data.get("min_stock"), "min_stock"),
            actor_id=g.current_user_id,
        )
        return jsonify(row.to_dict()), 200
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to set min stock for article %s", article_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/summary")
@require_auth
def stock_summary_route():
    """Headline stock figures; store_id is required unless the caller is global."""
    try:
        store_id = optional_int(request.args.get("store_id"), "store_id")
        if store_id is None and not g.access_profile.is_global_access:
            store_id = g.access_profile.primary_store_id
        require_store_permission(store_id, StoreAction.VIEW_REPORTS)
    except InventoryError as e:
        return error_response(e)

    return jsonify(inventory_service.get_stock_summary(store_id)), 200


@inventory_bp.post("/counts")
@require_auth
def record_count_route():
    """
    Record a physical inventory count.

    Request body:
    {
        "store_id": int,
        "counts": [{"article_id": int, "counted_stock": int}, ...]
    }

    Returns:
        200: {"success": int, "errors": [str], "movements": [...]}
    """
    data = request.get_json(silent=True) or {}

    try:
        result = inventory_service.record_inventory_count(
            store_id=coerce_int(data["store_id"], "store_id"),
            counts=data["counts"],
            actor_id=g.current_user_id,
        )
        return jsonify({
            "success": result["success"],
            "errors": result["errors"],
            "movements": [m.to_dict() for m in result["movements"]],
        }), 200
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record inventory count")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/projection/rebuild")
@require_auth
def rebuild_projection_route():
    """
    Re-fold the ledger and repair drifted projection rows (global users only).

    Request body (optional): {"store_id": int, "article_id": int}
    """
    data = request.get_json(silent=True) or {}

    try:
        if not g.access_profile.is_global_access:
            raise AuthorizationError(
                "Projection rebuild requires global access",
                user_id=g.current_user_id,
            )
        corrected = inventory_service.rebuild_projection(
            store_id=optional_int(data.get("store_id"), "store_id"),
            article_id=optional_int(data.get("article_id"), "article_id"),
        )
        return jsonify({"corrected": corrected}), 200
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Projection rebuild failed")
        return jsonify({"error": "Internal server error"}), 500
