# Overview: Service-layer operations for the stock ledger; append-only movements and the projection write.

"""
Stock Ledger Invariants (authoritative)

- StockMovement rows are append-only: never updated, never deleted.
- quantity > 0 always; direction comes from movement_type:
    in, transfer_in    -> add quantity
    out, transfer_out  -> subtract quantity, floored at zero
- The StoreStock projection for (store, article) is updated in the same DB
  transaction as the movement, under the key's lock.
- A decrement that would go below zero is handled by STOCK_NEGATIVE_POLICY:
    clamp  (default) -> stock becomes 0, the lost part is stored as
                        StockMovement.shortfall and logged
    reject           -> ValidationError, nothing written
- Authorization and validation happen before anything is written; a
  rejected append leaves ledger, projection, outbox and notifications
  untouched.
- Every successful append enqueues one outbox entry and one notification.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Article, Store, StoreStock, StockMovement, User
from ..models.inventory import (
    INBOUND_MOVEMENT_TYPES,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_TYPES,
)
from ..models.communications import OUTBOX_KIND_STOCK_MOVEMENT
from ..permissions import StoreAction
from ..time_utils import normalize_datetime, utcnow
from . import access_service, notification_service, sync_service
from .concurrency import key_locks, lock_for_update, run_with_retry


POLICY_CLAMP = "clamp"
POLICY_REJECT = "reject"

_MOVEMENT_LABELS = {
    MOVEMENT_IN: "Stock in",
    MOVEMENT_OUT: "Stock out",
    MOVEMENT_TRANSFER_IN: "Transfer in",
    MOVEMENT_TRANSFER_OUT: "Transfer out",
}


def apply_movement(current: int, movement_type: str, quantity: int) -> tuple[int, int]:
    """
    Fold one movement into an on-hand value.

    Returns (new_stock, shortfall); shortfall is the part of a decrement
    the zero floor absorbed.
    """
    if movement_type in INBOUND_MOVEMENT_TYPES:
        return current + quantity, 0
    remaining = current - quantity
    if remaining < 0:
        return 0, -remaining
    return remaining, 0


def negative_policy() -> str:
    policy = current_app.config.get("STOCK_NEGATIVE_POLICY", POLICY_CLAMP)
    if policy not in (POLICY_CLAMP, POLICY_REJECT):
        raise ValueError(f"Invalid STOCK_NEGATIVE_POLICY: {policy!r}")
    return policy


def validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity <= 0:
        raise ValidationError("quantity must be positive")
    return quantity


def get_active_store(store_id) -> Store:
    store = db.session.get(Store, store_id) if store_id is not None else None
    if store is None:
        raise NotFoundError(f"Store {store_id} not found")
    if not store.is_active:
        raise ValidationError(f"Store {store_id} is inactive")
    return store


def get_active_article(article_id) -> Article:
    article = db.session.get(Article, article_id) if article_id is not None else None
    if article is None:
        raise NotFoundError(f"Article {article_id} not found")
    if not article.is_active:
        raise ValidationError(f"Article {article_id} is inactive")
    return article


def validate_append(store_id, article_id, movement_type, quantity) -> tuple[Store, Article]:
    """Check every input of an append; raises before any write."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            f"movement_type must be one of {', '.join(MOVEMENT_TYPES)}"
        )
    validate_quantity(quantity)
    store = get_active_store(store_id)
    article = get_active_article(article_id)
    return store, article


def get_stock_row(store_id: int, article_id: int, *, create: bool = False, lock: bool = False) -> StoreStock | None:
    q = db.session.query(StoreStock).filter_by(store_id=store_id, article_id=article_id)
    if lock:
        q = lock_for_update(q)
    row = q.first()
    if row is None and create:
        row = StoreStock(store_id=store_id, article_id=article_id, stock=0)
        db.session.add(row)
        db.session.flush()
    return row


def _append_inner(
    *,
    store_id: int,
    article_id: int,
    movement_type: str,
    quantity: int,
    actor_id: int | None,
    notes: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    enqueue_sync: bool = True,
) -> StockMovement:
    """
    Core append without authorization, key locking, notification or commit.

    Callers hold key_locks for (store_id, article_id) and own the
    transaction (transfers, counts, purchase-order receipts).
    """
    row = get_stock_row(store_id, article_id, create=True, lock=True)
    previous = row.stock
    new_stock, shortfall = apply_movement(previous, movement_type, quantity)

    if shortfall:
        if negative_policy() == POLICY_REJECT:
            raise ValidationError(
                f"Insufficient stock for article {article_id} in store {store_id}. "
                f"On-hand: {previous}, requested: {quantity}"
            )
        current_app.logger.warning(
            "Clamped %s of %s for article %s in store %s at zero; shortfall %s",
            movement_type, quantity, article_id, store_id, shortfall,
        )

    now = utcnow()
    movement = StockMovement(
        store_id=store_id,
        article_id=article_id,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous,
        new_stock=new_stock,
        shortfall=shortfall,
        notes=notes,
        performed_by_user_id=actor_id,
        reference_type=reference_type,
        reference_id=reference_id,
        created_at=now,
    )
    db.session.add(movement)

    row.stock = new_stock
    row.last_movement_at = now
    db.session.flush()

    if enqueue_sync:
        sync_service.enqueue(OUTBOX_KIND_STOCK_MOVEMENT, movement.to_dict())
    return movement


def describe_movement(movement: StockMovement) -> str:
    """Human-readable one-liner for notifications."""
    article = db.session.get(Article, movement.article_id)
    store = db.session.get(Store, movement.store_id)
    actor = db.session.get(User, movement.performed_by_user_id) if movement.performed_by_user_id else None
    label = _MOVEMENT_LABELS.get(movement.movement_type, movement.movement_type)
    text = (
        f"{label}: {movement.quantity} {article.unit if article else 'unit'} of "
        f"\"{article.name if article else movement.article_id}\" at "
        f"{store.name if store else movement.store_id}"
    )
    if actor:
        text += f" by {actor.full_name or actor.username}"
    if movement.shortfall:
        text += f" (stock floored at zero, {movement.shortfall} unaccounted)"
    return text


def append(
    *,
    store_id: int,
    article_id: int,
    movement_type: str,
    quantity: int,
    actor_id: int | None,
    notes: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
) -> StockMovement:
    """
    Append a stock movement and update the on-hand projection.

    Requires manage_stock on the store.

    Raises:
        AuthorizationError: actor may not manage stock in the store
        ValidationError: bad movement type, quantity, store or article
    """
    access_service.require(actor_id, store_id, StoreAction.MANAGE_STOCK)
    validate_append(store_id, article_id, movement_type, quantity)

    def _op():
        with key_locks.hold((store_id, article_id)):
            try:
                movement = _append_inner(
                    store_id=store_id,
                    article_id=article_id,
                    movement_type=movement_type,
                    quantity=quantity,
                    actor_id=actor_id,
                    notes=notes,
                    reference_type=reference_type,
                    reference_id=reference_id,
                )
                notification_service.add_alert(
                    "warning" if movement.shortfall else "info",
                    _MOVEMENT_LABELS[movement_type],
                    describe_movement(movement),
                    store_id=store_id,
                )
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
        return movement

    return run_with_retry(_op)


def get_movements(
    *,
    store_id: int | None = None,
    article_id: int | None = None,
    since: datetime | str | None = None,
    until: datetime | str | None = None,
    movement_type: str | None = None,
    reference_id: str | None = None,
    store_ids: Iterable[int] | None = None,
    limit: int | None = None,
) -> list[StockMovement]:
    """
    Read ledger entries ordered by created_at ascending (id breaks ties).

    Omitted filters leave the result unscoped; since/until are inclusive.
    store_ids restricts the result to those stores before limit applies.
    """
    if movement_type is not None and movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"movement_type must be one of {', '.join(MOVEMENT_TYPES)}")
    try:
        since_dt = normalize_datetime(since)
        until_dt = normalize_datetime(until)
    except ValueError:
        raise ValidationError("since/until must be ISO-8601 datetimes")

    q = db.session.query(StockMovement)
    if store_id is not None:
        q = q.filter(StockMovement.store_id == store_id)
    if store_ids is not None:
        q = q.filter(StockMovement.store_id.in_(list(store_ids)))
    if article_id is not None:
        q = q.filter(StockMovement.article_id == article_id)
    if since_dt is not None:
        q = q.filter(StockMovement.created_at >= since_dt)
    if until_dt is not None:
        q = q.filter(StockMovement.created_at <= until_dt)
    if movement_type is not None:
        q = q.filter(StockMovement.movement_type == movement_type)
    if reference_id is not None:
        q = q.filter(StockMovement.reference_id == reference_id)

    q = q.order_by(StockMovement.created_at.asc(), StockMovement.id.asc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()
