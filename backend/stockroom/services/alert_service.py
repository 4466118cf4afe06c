# Overview: Service-layer operations for stock alerts; threshold classification over the projection.

from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..models import Article, StoreStock
from ..models.catalog import ARTICLE_STATUS_ACTIVE
from . import forecast_service


class AlertLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    AlertLevel.NONE: 0,
    AlertLevel.LOW: 1,
    AlertLevel.WARNING: 2,
    AlertLevel.CRITICAL: 3,
}


def classify(stock: int, min_stock: int) -> AlertLevel:
    """
    Map an on-hand quantity against its threshold to an alert tier.

    Rules are checked in order; the critical band (below half the
    threshold) sits inside the warning band, so it must win first.
    """
    if stock == 0 or stock < min_stock * 0.5:
        return AlertLevel.CRITICAL
    if stock < min_stock:
        return AlertLevel.WARNING
    if stock < min_stock * 1.5:
        return AlertLevel.LOW
    return AlertLevel.NONE


def _stockout_sort_key(days):
    # None means no consumption: sorts after every finite estimate
    return (days is None, days if days is not None else 0)


def list_stock_alerts(store_id: int | None = None, *, now=None) -> list[dict]:
    """
    Classify every active projection row and attach a stockout forecast.

    Returns non-NONE alerts, most severe first, then soonest stockout.
    """
    q = (
        db.session.query(StoreStock)
        .join(Article, Article.id == StoreStock.article_id)
        .filter(Article.status == ARTICLE_STATUS_ACTIVE)
    )
    if store_id is not None:
        q = q.filter(StoreStock.store_id == store_id)

    alerts = []
    for row in q.all():
        min_stock = row.effective_min_stock
        level = classify(row.stock, min_stock)
        if level is AlertLevel.NONE:
            continue
        fc = forecast_service.forecast(row.article_id, store_id=row.store_id, now=now)
        alerts.append({
            "store_id": row.store_id,
            "article_id": row.article_id,
            "article_name": row.article.name,
            "unit": row.article.unit,
            "stock": row.stock,
            "min_stock": min_stock,
            "level": level.value,
            "avg_daily_consumption": fc.avg_daily_consumption,
            "days_until_stockout": fc.days_until_stockout,
        })

    alerts.sort(key=lambda a: (
        -AlertLevel(a["level"]).severity,
        _stockout_sort_key(a["days_until_stockout"]),
        a["store_id"],
        a["article_id"],
    ))
    return alerts
