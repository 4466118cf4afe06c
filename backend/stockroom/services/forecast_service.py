# Overview: Service-layer operations for sales velocity; stockout forecasts and stock trends.

"""
Velocity forecasts are read-only: they fold completed sales history and the
current projection, store nothing, and return the same answer for the same
inputs.

- Only lines of completed sales with item_type "article" count.
- The window is [now - window_days, now], inclusive.
- days_until_stockout is None when nothing sold in the window (no estimate).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import Sale, SaleLine
from ..models.catalog import ITEM_TYPE_ARTICLE, SALE_STATUS_COMPLETED
from ..time_utils import normalize_datetime, utcnow
from . import ledger_service


TREND_UP = "up"
TREND_DOWN = "down"
TREND_STABLE = "stable"


@dataclass(frozen=True)
class Forecast:
    article_id: int
    store_id: int | None
    window_days: int
    total_sold: int
    current_stock: int
    avg_daily_consumption: float
    days_until_stockout: int | None

    def to_dict(self) -> dict:
        return asdict(self)


def _validate_days(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer")
    return value


def _resolve_now(now) -> datetime:
    try:
        resolved = normalize_datetime(now)
    except ValueError:
        raise ValidationError("now must be an ISO-8601 datetime")
    return resolved or utcnow()


def _current_stock(article_id: int, store_id: int | None) -> int:
    if store_id is not None:
        row = ledger_service.get_stock_row(store_id, article_id)
        return row.stock if row else 0
    article = ledger_service.get_active_article(article_id)
    return article.stock


def _sold_query(article_id: int, store_id: int | None):
    q = (
        db.session.query(func.coalesce(func.sum(SaleLine.quantity), 0))
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(
            SaleLine.article_id == article_id,
            SaleLine.item_type == ITEM_TYPE_ARTICLE,
            Sale.status == SALE_STATUS_COMPLETED,
        )
    )
    if store_id is not None:
        q = q.filter(Sale.store_id == store_id)
    return q


def units_sold(article_id: int, *, store_id: int | None = None, start: datetime, end: datetime) -> int:
    """Units of an article sold in [start, end]."""
    total = (
        _sold_query(article_id, store_id)
        .filter(Sale.sold_at >= start, Sale.sold_at <= end)
        .scalar()
    )
    return int(total or 0)


def forecast(article_id: int, store_id: int | None = None, window_days: int = 30, now=None) -> Forecast:
    """
    Average daily consumption over the trailing window and the days of
    stock left at that pace.

    Args:
        article_id: Article to forecast
        store_id: Restrict sales and stock to one store (None = all stores)
        window_days: Trailing window length, positive integer
        now: End of the window (defaults to utcnow)

    Returns:
        Forecast; days_until_stockout is None when nothing sold
    """
    _validate_days(window_days, "window_days")
    end = _resolve_now(now)
    start = end - timedelta(days=window_days)

    ledger_service.get_active_article(article_id)
    total = units_sold(article_id, store_id=store_id, start=start, end=end)
    current = _current_stock(article_id, store_id)

    avg = total / window_days
    days_left = None
    if total > 0:
        # floor(current / (total / window)) without float rounding
        days_left = (current * window_days) // total

    return Forecast(
        article_id=article_id,
        store_id=store_id,
        window_days=window_days,
        total_sold=total,
        current_stock=current,
        avg_daily_consumption=avg,
        days_until_stockout=days_left,
    )


def stock_trend(article_id: int, store_id: int | None = None, days: int = 30, now=None) -> dict:
    """
    Reconstruct estimated closing stock per day by walking back from the
    current on-hand and adding back each day's sales.

    Points are oldest first; trend compares the first and last estimate.
    """
    _validate_days(days, "days")
    end = _resolve_now(now)
    article = ledger_service.get_active_article(article_id)
    min_stock = article.min_stock
    if store_id is not None:
        row = ledger_service.get_stock_row(store_id, article_id)
        if row is not None:
            min_stock = row.effective_min_stock

    today = end.replace(hour=0, minute=0, second=0, microsecond=0)
    closing = _current_stock(article_id, store_id)
    points = []
    for offset in range(days):
        day_start = today - timedelta(days=offset)
        day_end = min(day_start + timedelta(days=1) - timedelta(microseconds=1), end)
        sold = units_sold(article_id, store_id=store_id, start=day_start, end=day_end)
        points.append({
            "date": day_start.date().isoformat(),
            "stock": closing,
            "sold": sold,
            "min_stock": min_stock,
        })
        closing += sold
    points.reverse()

    trend = TREND_STABLE
    if len(points) >= 2:
        diff = points[-1]["stock"] - points[0]["stock"]
        if diff > 0:
            trend = TREND_UP
        elif diff < 0:
            trend = TREND_DOWN

    return {
        "article_id": article_id,
        "store_id": store_id,
        "days": days,
        "trend": trend,
        "points": points,
    }
