# backend/stockroom/routes/transfers.py
"""
Inter-store transfer API routes.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_auth, require_store_access
from ..errors import InventoryError
from ..extensions import db
from ..services import transfer_service
from ..validation import coerce_int


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.route("", methods=["POST"])
@require_auth
def create_transfer():
    """
    Move stock between two stores.

    Request body:
    {
        "from_store_id": int,
        "to_store_id": int,
        "article_id": int,
        "quantity": int,
        "notes": str (optional)
    }

    Returns:
        201: Transfer applied (both legs)
        400: Invalid request
        403: Missing manage_stock on either store
        404: Unknown store or article
    """
    data = request.get_json(silent=True) or {}

    try:
        result = transfer_service.transfer(
            from_store_id=coerce_int(data["from_store_id"], "from_store_id"),
            to_store_id=coerce_int(data["to_store_id"], "to_store_id"),
            article_id=coerce_int(data["article_id"], "article_id"),
            quantity=coerce_int(data["quantity"], "quantity"),
            actor_id=g.current_user_id,
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 201

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Transfer failed")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/<reference_id>", methods=["GET"])
@require_auth
def get_transfer(reference_id: str):
    """Both legs of a transfer; the caller must see one of the two stores."""
    try:
        result = transfer_service.get_transfer(reference_id)
        profile = g.access_profile
        if not profile.can_access_store(result.out_movement.store_id):
            require_store_access(result.in_movement.store_id)
    except InventoryError as e:
        return error_response(e)
    return jsonify(result.to_dict()), 200
