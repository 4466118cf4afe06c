# backend/stockroom/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockroom.sqlite3 by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockroom.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Replenishment target is min_stock * multiplier
    REORDER_TARGET_MULTIPLIER = int(os.environ.get("REORDER_TARGET_MULTIPLIER", "3"))
    FORECAST_WINDOW_DAYS = int(os.environ.get("FORECAST_WINDOW_DAYS", "30"))
    RECENT_MOVEMENT_HOURS = int(os.environ.get("RECENT_MOVEMENT_HOURS", "24"))

    # "clamp": decrements floor at zero and record a shortfall
    # "reject": decrements that would go negative raise ValidationError
    STOCK_NEGATIVE_POLICY = os.environ.get("STOCK_NEGATIVE_POLICY", "clamp")

    # Remote catalog service; None keeps the outbox local-only
    CATALOG_SYNC_URL = os.environ.get("CATALOG_SYNC_URL") or None
    CATALOG_SYNC_TIMEOUT = float(os.environ.get("CATALOG_SYNC_TIMEOUT", "5.0"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    CATALOG_SYNC_URL = None
    STOCK_NEGATIVE_POLICY = "clamp"
