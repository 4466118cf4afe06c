# Overview: Service-layer operations for inter-store transfers; balanced two-leg ledger appends.

"""
Inter-store stock transfer.

A transfer is a balanced pair of ledger entries written in one transaction:
    transfer_out at the source store
    transfer_in  at the destination store
Both legs carry the same quantity, the same reference_id ("TRF-<hex>") and
the same correlation note. Either both exist or neither does.

The source balance is not checked under the default clamp policy; the
source projection floors at zero and the lost part is recorded as
shortfall. With STOCK_NEGATIVE_POLICY=reject the transfer fails instead.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import StockMovement
from ..models.communications import OUTBOX_KIND_TRANSFER
from ..models.inventory import MOVEMENT_TRANSFER_IN, MOVEMENT_TRANSFER_OUT
from ..permissions import StoreAction
from . import access_service, ledger_service, notification_service, sync_service
from .concurrency import key_locks, run_with_retry


REFERENCE_TYPE_TRANSFER = "transfer"


@dataclass(frozen=True)
class TransferResult:
    reference_id: str
    out_movement: StockMovement
    in_movement: StockMovement

    @property
    def quantity(self) -> int:
        return self.out_movement.quantity

    def to_dict(self) -> dict:
        return {
            "reference_id": self.reference_id,
            "article_id": self.out_movement.article_id,
            "from_store_id": self.out_movement.store_id,
            "to_store_id": self.in_movement.store_id,
            "quantity": self.quantity,
            "out_movement": self.out_movement.to_dict(),
            "in_movement": self.in_movement.to_dict(),
        }


def new_reference_id() -> str:
    return f"TRF-{uuid.uuid4().hex}"


def transfer(
    *,
    from_store_id: int,
    to_store_id: int,
    article_id: int,
    quantity: int,
    actor_id: int | None,
    notes: str | None = None,
) -> TransferResult:
    """
    Move stock between two stores.

    Args:
        from_store_id: Source store ID
        to_store_id: Destination store ID
        article_id: Article to move
        quantity: Positive integer quantity
        actor_id: User performing the transfer (needs manage_stock on both)
        notes: Optional free text appended to the correlation note

    Returns:
        TransferResult with both legs

    Raises:
        ValidationError: same store, bad quantity, missing/inactive store or article
        AuthorizationError: actor lacks manage_stock on either store
    """
    if from_store_id == to_store_id:
        raise ValidationError("Cannot transfer to the same store")
    ledger_service.validate_quantity(quantity)
    source = ledger_service.get_active_store(from_store_id)
    destination = ledger_service.get_active_store(to_store_id)
    article = ledger_service.get_active_article(article_id)

    access_service.require(actor_id, from_store_id, StoreAction.MANAGE_STOCK)
    access_service.require(actor_id, to_store_id, StoreAction.MANAGE_STOCK)

    reference_id = new_reference_id()
    note = f"Transfer {source.name} -> {destination.name}"
    if notes:
        note = f"{note}: {notes}"

    def _op():
        with key_locks.hold((from_store_id, article_id), (to_store_id, article_id)):
            try:
                out_movement = ledger_service._append_inner(
                    store_id=from_store_id,
                    article_id=article_id,
                    movement_type=MOVEMENT_TRANSFER_OUT,
                    quantity=quantity,
                    actor_id=actor_id,
                    notes=note,
                    reference_type=REFERENCE_TYPE_TRANSFER,
                    reference_id=reference_id,
                    enqueue_sync=False,
                )
                in_movement = ledger_service._append_inner(
                    store_id=to_store_id,
                    article_id=article_id,
                    movement_type=MOVEMENT_TRANSFER_IN,
                    quantity=quantity,
                    actor_id=actor_id,
                    notes=note,
                    reference_type=REFERENCE_TYPE_TRANSFER,
                    reference_id=reference_id,
                    enqueue_sync=False,
                )
                result = TransferResult(reference_id, out_movement, in_movement)
                sync_service.enqueue(OUTBOX_KIND_TRANSFER, result.to_dict())

                message = (
                    f"{quantity} {article.unit} of \"{article.name}\" moved from "
                    f"{source.name} to {destination.name}"
                )
                if out_movement.shortfall:
                    message += f" (source floored at zero, {out_movement.shortfall} unaccounted)"
                notification_service.add_alert(
                    "warning" if out_movement.shortfall else "info",
                    "Stock transfer",
                    message,
                    store_id=from_store_id,
                )
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
        return result

    result = run_with_retry(_op)
    current_app.logger.info(
        "Transfer %s: %s of article %s from store %s to store %s by user %s",
        reference_id, quantity, article_id, from_store_id, to_store_id, actor_id,
    )
    return result


def get_transfer(reference_id: str) -> TransferResult:
    """Both legs of a transfer by its correlation id."""
    legs = ledger_service.get_movements(reference_id=reference_id)
    out_leg = next((m for m in legs if m.movement_type == MOVEMENT_TRANSFER_OUT), None)
    in_leg = next((m for m in legs if m.movement_type == MOVEMENT_TRANSFER_IN), None)
    if out_leg is None or in_leg is None:
        raise NotFoundError(f"Transfer {reference_id} not found")
    return TransferResult(reference_id, out_leg, in_leg)
