# Overview: Request decorators and error mapping for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import AuthorizationError, InventoryError, NotFoundError, PersistenceError
from .permissions import parse_action
from .services import access_service


def require_auth(f):
    """
    Identify the acting user from the X-User-Id header.

    Sets the following Flask g attributes:
    - g.current_user_id: the acting user's id
    - g.access_profile: the resolved AccessProfile

    Returns 401 if the header is missing or malformed, or the user is
    unknown or inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-User-Id", "").strip()
        if not raw:
            return jsonify({"error": "Authentication required"}), 401
        try:
            user_id = int(raw)
        except ValueError:
            return jsonify({"error": "Invalid X-User-Id header"}), 401

        profile = access_service.resolve(user_id)
        if profile is None:
            return jsonify({"error": "Unknown or inactive user"}), 401

        g.current_user_id = user_id
        g.access_profile = profile
        return f(*args, **kwargs)

    return decorated_function


def require_store_access(store_id) -> None:
    """Raise AuthorizationError when the acting user cannot see store_id."""
    profile = g.access_profile
    if store_id is not None and not profile.can_access_store(store_id):
        raise AuthorizationError(
            f"User {profile.user_id} has no access to store {store_id}",
            user_id=profile.user_id,
            store_id=store_id,
        )


def require_store_permission(store_id, action) -> None:
    """
    Raise AuthorizationError unless the acting user may perform action in store_id.

    An omitted store_id means every store, which only global users may ask for.
    """
    profile = g.access_profile
    if store_id is None and not profile.is_global_access:
        raise AuthorizationError(
            "store_id is required for store-scoped users",
            user_id=profile.user_id,
            action=parse_action(action).value,
        )
    require_store_access(store_id)
    access_service.require(profile.user_id, store_id, action)


def scoped_store_ids(store_id):
    """
    Store ids a listing query should be limited to.

    None leaves the query unscoped: either store_id already narrows it or the
    caller is global.
    """
    profile = g.access_profile
    if store_id is not None or profile.is_global_access:
        return None
    return sorted(profile.assigned_store_ids)


def error_response(exc: InventoryError):
    """Map the service error taxonomy to an HTTP response."""
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, AuthorizationError):
        return jsonify({
            "error": "Permission denied",
            "required_permission": exc.action,
            "message": str(exc),
        }), 403
    if isinstance(exc, PersistenceError):
        return jsonify({"error": str(exc)}), 502
    return jsonify({"error": str(exc)}), 400
