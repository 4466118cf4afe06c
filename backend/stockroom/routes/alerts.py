# Overview: Flask API routes for stock alerts; classifies the projection for stores the caller may report on.

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, require_auth, require_store_permission
from ..errors import InventoryError
from ..permissions import StoreAction
from ..services import access_service, alert_service
from ..validation import optional_int


alerts_bp = Blueprint("alerts", __name__, url_prefix="/api/alerts")


@alerts_bp.get("")
@require_auth
def list_alerts():
    """
    Non-NONE stock alerts, most severe first.

    Query params:
        store_id: restrict to one store
        level: only alerts of this tier (low, warning, critical)
    """
    try:
        store_id = optional_int(request.args.get("store_id"), "store_id")
        if store_id is not None:
            require_store_permission(store_id, StoreAction.VIEW_REPORTS)
        level = request.args.get("level")
        if level is not None:
            level = alert_service.AlertLevel(level).value
    except InventoryError as e:
        return error_response(e)
    except ValueError:
        return jsonify({"error": "level must be one of low, warning, critical"}), 400

    alerts = alert_service.list_stock_alerts(store_id)
    alerts = access_service.filter_permitted(g.access_profile, alerts, StoreAction.VIEW_REPORTS)
    if level is not None:
        alerts = [a for a in alerts if a["level"] == level]

    counts = {lvl.value: 0 for lvl in alert_service.AlertLevel if lvl is not alert_service.AlertLevel.NONE}
    for alert in alerts:
        counts[alert["level"]] += 1
    return jsonify({"alerts": alerts, "counts": counts}), 200
