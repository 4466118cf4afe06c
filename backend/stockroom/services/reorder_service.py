# Overview: Service-layer operations for replenishment; reorder suggestions and purchase orders.

"""
Reorder rules:
- A stocked key qualifies when stock < effective min_stock (strict; the LOW
  tier alone never qualifies).
- target = min_stock * REORDER_TARGET_MULTIPLIER
- suggested_quantity = ceil(max(0, target - stock))
- estimated_cost_cents = suggested_quantity * Article.purchase_price_cents

Purchase order lifecycle:
    DRAFT -> SUBMITTED -> RECEIVED
    DRAFT | SUBMITTED -> CANCELLED
Receiving appends one `in` movement per line (reference_type
"purchase_order", reference_id = document number).
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Article, PurchaseOrder, PurchaseOrderLine, StoreStock
from ..models.catalog import ARTICLE_STATUS_ACTIVE
from ..models.inventory import (
    MOVEMENT_IN,
    PO_STATUS_CANCELLED,
    PO_STATUS_DRAFT,
    PO_STATUS_RECEIVED,
    PO_STATUS_SUBMITTED,
)
from ..permissions import StoreAction
from ..time_utils import utcnow
from . import access_service, forecast_service, ledger_service, notification_service
from .alert_service import AlertLevel, classify
from .concurrency import key_locks, run_with_retry
from .document_service import DOCUMENT_TYPE_PURCHASE_ORDER, next_document_number


UNASSIGNED_SUPPLIER = "unassigned"

PO_STATUSES = (PO_STATUS_DRAFT, PO_STATUS_SUBMITTED, PO_STATUS_RECEIVED, PO_STATUS_CANCELLED)


@dataclass(frozen=True)
class ReorderSuggestion:
    article_id: int
    store_id: int
    article_name: str
    current_stock: int
    min_stock: int
    suggested_quantity: int
    unit_cost_cents: int
    estimated_cost_cents: int
    level: str
    days_until_stockout: int | None
    supplier_name: str | None

    def to_dict(self) -> dict:
        return asdict(self)


def target_multiplier() -> int:
    return current_app.config.get("REORDER_TARGET_MULTIPLIER", 3)


def suggested_quantity(stock: int, min_stock: int, multiplier: int | float = 3) -> int:
    """ceil(max(0, min_stock * multiplier - stock))"""
    return int(math.ceil(max(0, min_stock * multiplier - stock)))


def suggest_for_stock_row(row: StoreStock, *, multiplier=None, now=None) -> ReorderSuggestion | None:
    """Suggestion for one projection row, or None when it is at/above threshold."""
    min_stock = row.effective_min_stock
    if not row.stock < min_stock:
        return None
    if multiplier is None:
        multiplier = target_multiplier()

    article = row.article
    qty = suggested_quantity(row.stock, min_stock, multiplier)
    unit_cost = article.purchase_price_cents or 0
    fc = forecast_service.forecast(
        row.article_id,
        store_id=row.store_id,
        window_days=current_app.config.get("FORECAST_WINDOW_DAYS", 30),
        now=now,
    )
    return ReorderSuggestion(
        article_id=row.article_id,
        store_id=row.store_id,
        article_name=article.name,
        current_stock=row.stock,
        min_stock=min_stock,
        suggested_quantity=qty,
        unit_cost_cents=unit_cost,
        estimated_cost_cents=qty * unit_cost,
        level=classify(row.stock, min_stock).value,
        days_until_stockout=fc.days_until_stockout,
        supplier_name=article.supplier_name,
    )


def _suggestion_sort_key(s: ReorderSuggestion):
    days = s.days_until_stockout
    return (
        -AlertLevel(s.level).severity,
        days is None,
        days if days is not None else 0,
        s.article_id,
    )


def suggest_all(store_id: int, *, now=None) -> list[ReorderSuggestion]:
    """
    Suggestions for every stocked, active article in the store.

    Sorted most severe first, then soonest stockout (unbounded last).
    """
    ledger_service.get_active_store(store_id)
    rows = (
        db.session.query(StoreStock)
        .join(Article, Article.id == StoreStock.article_id)
        .filter(StoreStock.store_id == store_id, Article.status == ARTICLE_STATUS_ACTIVE)
        .all()
    )
    multiplier = target_multiplier()
    suggestions = []
    for row in rows:
        suggestion = suggest_for_stock_row(row, multiplier=multiplier, now=now)
        if suggestion is not None:
            suggestions.append(suggestion)
    suggestions.sort(key=_suggestion_sort_key)
    return suggestions


def _group_by_supplier(suggestions: list[ReorderSuggestion]) -> list[tuple[str | None, list[ReorderSuggestion]]]:
    groups: dict[str, list[ReorderSuggestion]] = {}
    unassigned: list[ReorderSuggestion] = []
    for s in suggestions:
        if s.supplier_name:
            groups.setdefault(s.supplier_name, []).append(s)
        else:
            unassigned.append(s)
    ordered: list[tuple[str | None, list[ReorderSuggestion]]] = sorted(groups.items())
    if unassigned:
        ordered.append((None, unassigned))
    return ordered


def process_reorder(
    *,
    store_id: int,
    actor_id: int,
    article_ids: list[int] | None = None,
    now=None,
) -> list[PurchaseOrder]:
    """
    Turn the store's current suggestions into DRAFT purchase orders.

    One order per supplier; articles without a supplier share one
    "unassigned" order.

    Args:
        store_id: Store to replenish
        actor_id: User creating the orders (needs manage_stock)
        article_ids: Restrict to these articles (None = every suggestion)

    Returns:
        The created PurchaseOrder rows

    Raises:
        AuthorizationError: actor may not manage stock in the store
        ValidationError: nothing to reorder
    """
    access_service.require(actor_id, store_id, StoreAction.MANAGE_STOCK)
    suggestions = suggest_all(store_id, now=now)
    if article_ids is not None:
        wanted = set(article_ids)
        suggestions = [s for s in suggestions if s.article_id in wanted]
    if not suggestions:
        raise ValidationError("No articles need reordering")

    def _op():
        try:
            orders = []
            for supplier, items in _group_by_supplier(suggestions):
                po = PurchaseOrder(
                    store_id=store_id,
                    document_number=next_document_number(
                        store_id=store_id,
                        document_type=DOCUMENT_TYPE_PURCHASE_ORDER,
                        prefix="PO",
                    ),
                    supplier_name=supplier,
                    status=PO_STATUS_DRAFT,
                    notes=(
                        "Automatic reorder - low stock"
                        if supplier
                        else "Automatic reorder - articles without an assigned supplier"
                    ),
                    created_by_user_id=actor_id,
                    created_at=utcnow(),
                )
                for s in items:
                    po.lines.append(PurchaseOrderLine(
                        article_id=s.article_id,
                        quantity=s.suggested_quantity,
                        unit_cost_cents=s.unit_cost_cents,
                    ))
                po.total_cost_cents = sum(s.estimated_cost_cents for s in items)
                db.session.add(po)
                orders.append(po)
            db.session.flush()

            notification_service.add_alert(
                "success",
                "Reorder created",
                f"{len(orders)} purchase order(s) created for {len(suggestions)} article(s)",
                store_id=store_id,
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return orders

    orders = run_with_retry(_op)
    current_app.logger.info(
        "Reorder for store %s: %s purchase order(s) (%s)",
        store_id, len(orders), ", ".join(o.document_number for o in orders),
    )
    return orders


def get_purchase_order(po_id: int) -> PurchaseOrder:
    po = db.session.get(PurchaseOrder, po_id)
    if po is None:
        raise NotFoundError(f"Purchase order {po_id} not found")
    return po


def list_purchase_orders(
    *,
    store_id: int | None = None,
    status: str | None = None,
    store_ids: Iterable[int] | None = None,
    limit: int = 100,
) -> list[PurchaseOrder]:
    if status is not None and status not in PO_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(PO_STATUSES)}")
    q = db.session.query(PurchaseOrder)
    if store_id is not None:
        q = q.filter(PurchaseOrder.store_id == store_id)
    if store_ids is not None:
        q = q.filter(PurchaseOrder.store_id.in_(list(store_ids)))
    if status is not None:
        q = q.filter(PurchaseOrder.status == status)
    return q.order_by(PurchaseOrder.id.desc()).limit(limit).all()


def submit_purchase_order(po_id: int, actor_id: int) -> PurchaseOrder:
    """DRAFT -> SUBMITTED."""
    def _op():
        po = get_purchase_order(po_id)
        access_service.require(actor_id, po.store_id, StoreAction.MANAGE_STOCK)
        if po.status != PO_STATUS_DRAFT:
            raise ValidationError(f"Cannot submit purchase order in {po.status} status")
        po.status = PO_STATUS_SUBMITTED
        po.submitted_by_user_id = actor_id
        po.submitted_at = utcnow()
        db.session.commit()
        current_app.logger.info("Purchase order %s submitted by user %s", po.document_number, actor_id)
        return po

    return run_with_retry(_op)


def receive_purchase_order(po_id: int, actor_id: int) -> PurchaseOrder:
    """
    SUBMITTED -> RECEIVED.

    Appends one `in` movement per line in a single transaction and links
    each line to its movement.
    """
    def _op():
        po = get_purchase_order(po_id)
        access_service.require(actor_id, po.store_id, StoreAction.MANAGE_STOCK)
        if po.status != PO_STATUS_SUBMITTED:
            raise ValidationError(f"Cannot receive purchase order in {po.status} status")
        ledger_service.get_active_store(po.store_id)
        for line in po.lines:
            ledger_service.get_active_article(line.article_id)
            ledger_service.validate_quantity(line.quantity)

        keys = [(po.store_id, line.article_id) for line in po.lines]
        with key_locks.hold(*keys):
            try:
                for line in po.lines:
                    movement = ledger_service._append_inner(
                        store_id=po.store_id,
                        article_id=line.article_id,
                        movement_type=MOVEMENT_IN,
                        quantity=line.quantity,
                        actor_id=actor_id,
                        notes=f"Received {po.document_number}",
                        reference_type="purchase_order",
                        reference_id=po.document_number,
                    )
                    line.in_movement_id = movement.id

                po.status = PO_STATUS_RECEIVED
                po.received_by_user_id = actor_id
                po.received_at = utcnow()

                units = sum(line.quantity for line in po.lines)
                notification_service.add_alert(
                    "success",
                    "Purchase order received",
                    f"{po.document_number}: {units} unit(s) across {len(po.lines)} article(s) added to stock",
                    store_id=po.store_id,
                )
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
        current_app.logger.info("Purchase order %s received by user %s", po.document_number, actor_id)
        return po

    return run_with_retry(_op)


def cancel_purchase_order(po_id: int, actor_id: int, reason: str | None = None) -> PurchaseOrder:
    """DRAFT | SUBMITTED -> CANCELLED."""
    def _op():
        po = get_purchase_order(po_id)
        access_service.require(actor_id, po.store_id, StoreAction.MANAGE_STOCK)
        if po.status not in (PO_STATUS_DRAFT, PO_STATUS_SUBMITTED):
            raise ValidationError(f"Cannot cancel purchase order in {po.status} status")
        po.status = PO_STATUS_CANCELLED
        po.cancelled_by_user_id = actor_id
        po.cancelled_at = utcnow()
        po.cancellation_reason = reason
        db.session.commit()
        current_app.logger.info("Purchase order %s cancelled by user %s", po.document_number, actor_id)
        return po

    return run_with_retry(_op)
