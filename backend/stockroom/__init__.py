# backend/stockroom/__init__.py
from __future__ import annotations

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | type | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if isinstance(test_config, dict):
        app.config.update(test_config)
    elif test_config is not None:
        app.config.from_object(test_config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Session hooks for post-commit notification delivery
    from .services import notification_service  # noqa: F401

    # Register blueprints
    from .routes.stores import stores_bp
    from .routes.inventory import inventory_bp
    from .routes.alerts import alerts_bp
    from .routes.forecast import forecast_bp
    from .routes.reorder import reorder_bp, purchase_orders_bp
    from .routes.transfers import transfers_bp
    from .routes.access import access_bp
    from .routes.notifications import notifications_bp
    from .routes.sync import sync_bp

    app.register_blueprint(stores_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(alerts_bp)
    app.register_blueprint(forecast_bp)
    app.register_blueprint(reorder_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(access_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(sync_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "X-User-Id, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
