# Overview: Service-layer operations for inventory; on-hand projection reads, counts and rebuilds.

# backend/stockroom/services/inventory_service.py
"""
Inventory Projection Invariants & Time Semantics (authoritative)

Canonical time handling:
- All internal datetimes are UTC-naive (tzinfo=None).
- API accepts ISO-8601 with 'Z' or offsets; inputs are normalized to UTC-naive.
- API responses serialize datetimes as ISO-8601 'Z' strings.

Projection model:
- StoreStock.stock is the live counter for (store, article); it is only
  written by ledger_service in the same transaction as a StockMovement.
- Folding a key's movements in ledger order with apply_movement (stepwise
  zero floor) reproduces StoreStock.stock exactly. Equivalently:
      stock == sum(signed quantities) + sum(shortfall)
- rebuild_projection re-folds the ledger and repairs any drift.
- A key with no StoreStock row has on-hand 0.

Thresholds:
- StoreStock.min_stock overrides Article.min_stock for that store.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import AuthorizationError, InventoryError, ValidationError
from ..models import Article, StoreStock, StockMovement
from ..models.catalog import ARTICLE_STATUS_ACTIVE
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from ..permissions import StoreAction
from ..time_utils import utcnow
from . import access_service, ledger_service, notification_service
from .alert_service import AlertLevel, classify
from .concurrency import key_locks, run_with_retry


def get_on_hand(store_id: int, article_id: int) -> int:
    """Current on-hand for one key (0 when the key was never stocked)."""
    row = ledger_service.get_stock_row(store_id, article_id)
    return row.stock if row else 0


def get_article_stock(article_id: int) -> int:
    """On-hand summed across every store."""
    total = (
        db.session.query(func.coalesce(func.sum(StoreStock.stock), 0))
        .filter(StoreStock.article_id == article_id)
        .scalar()
    )
    return int(total or 0)


def get_store_stock(store_id: int | None = None, *, include_inactive: bool = False) -> list[StoreStock]:
    """Projection rows for a store (or every store), by store then article."""
    q = db.session.query(StoreStock).join(Article, Article.id == StoreStock.article_id)
    if store_id is not None:
        q = q.filter(StoreStock.store_id == store_id)
    if not include_inactive:
        q = q.filter(Article.status == ARTICLE_STATUS_ACTIVE)
    return q.order_by(StoreStock.store_id.asc(), StoreStock.article_id.asc()).all()


def set_min_stock(*, store_id: int, article_id: int, min_stock: int | None, actor_id: int) -> StoreStock:
    """
    Set (or clear, with None) the per-store reorder threshold.

    Requires edit or manage_stock on the store.
    """
    if not (
        access_service.authorize(actor_id, store_id, StoreAction.EDIT)
        or access_service.authorize(actor_id, store_id, StoreAction.MANAGE_STOCK)
    ):
        raise AuthorizationError(
            f"User {actor_id} may not change stock thresholds in store {store_id}",
            user_id=actor_id,
            store_id=store_id,
            action=StoreAction.EDIT.value,
        )
    if min_stock is not None:
        if isinstance(min_stock, bool) or not isinstance(min_stock, int) or min_stock < 0:
            raise ValidationError("min_stock must be a non-negative integer")
    ledger_service.get_active_store(store_id)
    ledger_service.get_active_article(article_id)

    def _op():
        with key_locks.hold((store_id, article_id)):
            row = ledger_service.get_stock_row(store_id, article_id, create=True, lock=True)
            row.min_stock = min_stock
            db.session.commit()
        return row

    return run_with_retry(_op)


def record_inventory_count(*, store_id: int, counts: list[dict], actor_id: int) -> dict:
    """
    Apply a physical count.

    Each entry {"article_id", "counted_stock"} appends an `in` or `out`
    movement for the difference (reference_type="inventory") and stamps
    last_count_at. Entries are applied independently; failures are
    collected rather than aborting the whole count.
    """
    access_service.require(actor_id, store_id, StoreAction.MANAGE_STOCK)
    ledger_service.get_active_store(store_id)
    if not isinstance(counts, list):
        raise ValidationError("counts must be a list")

    applied = 0
    errors: list[str] = []
    movements = []

    for entry in counts:
        article_id = entry.get("article_id") if isinstance(entry, dict) else None
        counted = entry.get("counted_stock") if isinstance(entry, dict) else None
        try:
            if isinstance(counted, bool) or not isinstance(counted, int) or counted < 0:
                raise ValidationError("counted_stock must be a non-negative integer")
            ledger_service.get_active_article(article_id)
            movement = _apply_count(store_id, article_id, counted, actor_id)
        except InventoryError as exc:
            errors.append(f"Article {article_id}: {exc}")
            continue
        applied += 1
        if movement is not None:
            movements.append(movement)

    if applied:
        notification_service.add_alert(
            "info",
            "Inventory count",
            f"Physical count recorded for {applied} article(s); {len(movements)} adjustment(s) posted",
            store_id=store_id,
            commit=True,
        )

    return {"success": applied, "errors": errors, "movements": movements}


def _apply_count(store_id: int, article_id: int, counted: int, actor_id: int):
    def _op():
        with key_locks.hold((store_id, article_id)):
            try:
                row = ledger_service.get_stock_row(store_id, article_id, create=True, lock=True)
                diff = counted - row.stock
                movement = None
                if diff:
                    movement = ledger_service._append_inner(
                        store_id=store_id,
                        article_id=article_id,
                        movement_type=MOVEMENT_IN if diff > 0 else MOVEMENT_OUT,
                        quantity=abs(diff),
                        actor_id=actor_id,
                        notes="Physical inventory count",
                        reference_type="inventory",
                    )
                row.last_count_at = utcnow()
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
        return movement

    return run_with_retry(_op)


def fold_movements(movements) -> int:
    """Replay movements (in ledger order) from zero."""
    stock = 0
    for movement in movements:
        stock, _shortfall = ledger_service.apply_movement(stock, movement.movement_type, movement.quantity)
    return stock


def rebuild_projection(*, store_id: int | None = None, article_id: int | None = None) -> list[dict]:
    """
    Re-fold the ledger and repair drifted projection rows.

    Returns one entry per corrected key:
    {"store_id", "article_id", "previous_stock", "stock"}.
    """
    movements = ledger_service.get_movements(store_id=store_id, article_id=article_id)
    by_key: dict[tuple[int, int], list[StockMovement]] = {}
    for movement in movements:
        by_key.setdefault((movement.store_id, movement.article_id), []).append(movement)

    q = db.session.query(StoreStock)
    if store_id is not None:
        q = q.filter(StoreStock.store_id == store_id)
    if article_id is not None:
        q = q.filter(StoreStock.article_id == article_id)
    rows = {(row.store_id, row.article_id): row for row in q.all()}

    corrected = []
    for key in sorted(set(by_key) | set(rows)):
        expected = fold_movements(by_key.get(key, []))
        with key_locks.hold(key):
            row = rows.get(key)
            if row is None:
                row = ledger_service.get_stock_row(key[0], key[1], create=True)
            if row.stock == expected:
                continue
            current_app.logger.info(
                "Projection drift for store %s article %s: %s -> %s", key[0], key[1], row.stock, expected
            )
            corrected.append({
                "store_id": key[0],
                "article_id": key[1],
                "previous_stock": row.stock,
                "stock": expected,
            })
            row.stock = expected

    db.session.commit()
    return corrected


def get_stock_summary(store_id: int | None = None) -> dict:
    """Headline figures for a store (or all stores)."""
    rows = get_store_stock(store_id)

    total_value = 0
    low = 0
    out = 0
    for row in rows:
        total_value += row.stock * (row.article.price_cents or 0)
        if classify(row.stock, row.effective_min_stock) is not AlertLevel.NONE:
            low += 1
        if row.stock == 0:
            out += 1

    hours = current_app.config.get("RECENT_MOVEMENT_HOURS", 24)
    since = utcnow() - timedelta(hours=hours)
    recent_q = db.session.query(func.count(StockMovement.id)).filter(StockMovement.created_at >= since)
    if store_id is not None:
        recent_q = recent_q.filter(StockMovement.store_id == store_id)

    return {
        "store_id": store_id,
        "total_articles": len(rows),
        "total_value_cents": total_value,
        "low_stock_count": low,
        "out_of_stock_count": out,
        "recent_movements": int(recent_q.scalar() or 0),
    }
