# Overview: Flask API routes for the store directory; lists stores visible to the caller.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import access_service
from ..validation import parse_bool


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
@require_auth
def list_stores():
    """
    Stores the caller may act on.

    Query params:
        all: when true and the caller is global, include inactive stores
    """
    profile = g.access_profile
    if parse_bool(request.args.get("all", "false")) and profile.is_global_access:
        stores = access_service.list_stores(active_only=False)
    else:
        stores = access_service.effective_stores(profile)
    return jsonify([store.to_dict() for store in stores]), 200
