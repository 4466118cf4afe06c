# Overview: Flask API routes for sales velocity; stockout forecasts and stock trends.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import error_response, require_auth, require_store_permission
from ..errors import InventoryError
from ..permissions import StoreAction
from ..services import forecast_service
from ..validation import optional_int


forecast_bp = Blueprint("forecast", __name__, url_prefix="/api/forecast")


@forecast_bp.get("/<int:article_id>")
@require_auth
def get_forecast(article_id: int):
    """
    Query params:
        store_id: one store's sales and stock (omit for all stores; global users only)
        window_days: trailing window (default FORECAST_WINDOW_DAYS)
        now: ISO-8601 end of window (default: now)
    """
    try:
        store_id = optional_int(request.args.get("store_id"), "store_id")
        require_store_permission(store_id, StoreAction.VIEW_REPORTS)
        window = optional_int(request.args.get("window_days"), "window_days")
        if window is None:
            window = current_app.config.get("FORECAST_WINDOW_DAYS", 30)
        result = forecast_service.forecast(
            article_id,
            store_id=store_id,
            window_days=window,
            now=request.args.get("now"),
        )
    except InventoryError as e:
        return error_response(e)
    return jsonify(result.to_dict()), 200


@forecast_bp.get("/<int:article_id>/trend")
@require_auth
def get_trend(article_id: int):
    """Daily estimated stock and units sold; query params store_id, days, now."""
    try:
        store_id = optional_int(request.args.get("store_id"), "store_id")
        require_store_permission(store_id, StoreAction.VIEW_REPORTS)
        days = optional_int(request.args.get("days"), "days") or 30
        result = forecast_service.stock_trend(
            article_id,
            store_id=store_id,
            days=days,
            now=request.args.get("now"),
        )
    except InventoryError as e:
        return error_response(e)
    return jsonify(result), 200
