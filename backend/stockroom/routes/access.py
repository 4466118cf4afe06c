# backend/stockroom/routes/access.py
"""
Store access administration routes.

SECURITY:
- Any caller may read their own profile; reading someone else's needs
  global access
- Assigning or removing a store needs manage_users on that store
- Toggling global access needs a global caller
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_auth
from ..errors import AuthorizationError, InventoryError, NotFoundError, ValidationError
from ..extensions import db
from ..permissions import get_action_definition, get_all_action_codes
from ..services import access_service


access_bp = Blueprint("access", __name__, url_prefix="/api/access")


@access_bp.get("/actions")
@require_auth
def list_actions():
    """Store action codes with their names and permission columns."""
    return jsonify([get_action_definition(code) for code in get_all_action_codes()]), 200


@access_bp.get("/users/<int:user_id>/profile")
@require_auth
def get_profile(user_id: int):
    try:
        if user_id != g.current_user_id and not g.access_profile.is_global_access:
            raise AuthorizationError(
                "Reading another user's access profile requires global access",
                user_id=g.current_user_id,
            )
        profile = access_service.resolve(user_id)
        if profile is None:
            raise NotFoundError(f"User {user_id} not found or inactive")
    except InventoryError as e:
        return error_response(e)

    data = profile.to_dict()
    data["assignments"] = [a.to_dict() for a in access_service.list_assignments(user_id)]
    data["stores"] = [s.to_dict() for s in access_service.effective_stores(profile)]
    return jsonify(data), 200


@access_bp.put("/users/<int:user_id>/stores/<int:store_id>")
@require_auth
def assign_store(user_id: int, store_id: int):
    """
    Create or update a user's assignment to a store.

    Request body (all optional):
    {
        "permissions": {"can_create": bool, ..., "can_manage_users": bool},
        "is_primary": bool
    }

    Omitted bits keep their current value, or the role default for a new
    assignment.
    """
    data = request.get_json(silent=True) or {}

    try:
        permissions = data.get("permissions")
        if permissions is not None and not isinstance(permissions, dict):
            raise ValidationError("permissions must be an object")
        is_primary = data.get("is_primary")
        if is_primary is not None and not isinstance(is_primary, bool):
            raise ValidationError("is_primary must be a boolean")
        assignment = access_service.assign_user_to_store(
            user_id=user_id,
            store_id=store_id,
            permissions=permissions,
            is_primary=is_primary,
            assigned_by_user_id=g.current_user_id,
        )
        return jsonify(assignment.to_dict()), 200
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to assign user %s to store %s", user_id, store_id)
        return jsonify({"error": "Internal server error"}), 500


@access_bp.delete("/users/<int:user_id>/stores/<int:store_id>")
@require_auth
def remove_store(user_id: int, store_id: int):
    try:
        removed = access_service.remove_user_from_store(
            user_id=user_id,
            store_id=store_id,
            actor_id=g.current_user_id,
        )
        return jsonify({"removed": removed}), 200
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to remove user %s from store %s", user_id, store_id)
        return jsonify({"error": "Internal server error"}), 500


@access_bp.put("/users/<int:user_id>/global")
@require_auth
def set_global(user_id: int):
    """
    Request body:
    {
        "is_global": bool
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        profile = access_service.set_user_global_access(
            user_id=user_id,
            is_global=data["is_global"],
            actor_id=g.current_user_id,
        )
        return jsonify(profile.to_dict()), 200
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to set global access for user %s", user_id)
        return jsonify({"error": "Internal server error"}), 500
