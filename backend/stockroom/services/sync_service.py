# Overview: Outbox towards the remote catalog service; enqueue with the ledger write, flush explicitly.

"""
Sync Invariants

- Local ledger and projection are authoritative.
- Every ledger change enqueues exactly one OutboxEntry in the same DB
  transaction (a transfer enqueues one entry covering both legs).
- flush_outbox delivers entries in id order and stops at the first
  failure so the remote side never sees them out of order.
- A failed delivery marks the entry FAILED, raises a degraded-mode
  warning notification, and is only retried by the next explicit flush.
"""

from __future__ import annotations

import json
from typing import Protocol

import httpx
from flask import current_app

from ..extensions import db
from ..errors import PersistenceError, ValidationError
from ..models import OutboxEntry
from ..models.communications import (
    OUTBOX_KIND_STOCK_MOVEMENT,
    OUTBOX_KIND_TRANSFER,
    OUTBOX_STATUS_FAILED,
    OUTBOX_STATUS_PENDING,
    OUTBOX_STATUS_SENT,
)
from ..time_utils import utcnow
from . import notification_service


class CatalogGateway(Protocol):
    def create_stock_movement(self, payload: dict) -> None: ...

    def transfer_stock(self, payload: dict) -> None: ...


class HttpCatalogGateway:
    """Catalog gateway speaking JSON over HTTP."""

    def __init__(self, base_url: str, *, timeout: float = 5.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def _post(self, path: str, payload: dict) -> None:
        try:
            response = self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PersistenceError(f"Catalog sync failed for {path}: {exc}") from exc

    def create_stock_movement(self, payload: dict) -> None:
        self._post("/stock-movements", payload)

    def transfer_stock(self, payload: dict) -> None:
        self._post("/stock-transfers", payload)

    def close(self) -> None:
        self._client.close()


def get_gateway() -> CatalogGateway | None:
    """Gateway configured by CATALOG_SYNC_URL, or None for local-only mode."""
    url = current_app.config.get("CATALOG_SYNC_URL")
    if not url:
        return None
    return HttpCatalogGateway(url, timeout=current_app.config.get("CATALOG_SYNC_TIMEOUT", 5.0))


def enqueue(kind: str, payload: dict) -> OutboxEntry:
    """Add an outbox entry to the current transaction (no commit)."""
    if kind not in (OUTBOX_KIND_STOCK_MOVEMENT, OUTBOX_KIND_TRANSFER):
        raise ValidationError(f"Unknown outbox kind: {kind!r}")
    entry = OutboxEntry(kind=kind, payload=json.dumps(payload, sort_keys=True), status=OUTBOX_STATUS_PENDING)
    db.session.add(entry)
    db.session.flush()
    return entry


def _dispatch(gateway: CatalogGateway, entry: OutboxEntry) -> None:
    if entry.kind == OUTBOX_KIND_TRANSFER:
        gateway.transfer_stock(entry.payload_data)
    else:
        gateway.create_stock_movement(entry.payload_data)


def flush_outbox(gateway: CatalogGateway | None = None, *, limit: int = 100) -> dict:
    """
    Push PENDING and FAILED entries to the catalog service in order.

    Returns counts of sent/failed entries and what is still outstanding.
    """
    owned = gateway is None
    gateway = gateway or get_gateway()
    if gateway is None:
        return {"gateway": None, "sent": 0, "failed": 0, "outstanding": _outstanding_count()}
    try:
        return _flush(gateway, limit)
    finally:
        if owned:
            gateway.close()


def _flush(gateway: CatalogGateway, limit: int) -> dict:
    entries = (
        db.session.query(OutboxEntry)
        .filter(OutboxEntry.status.in_([OUTBOX_STATUS_PENDING, OUTBOX_STATUS_FAILED]))
        .order_by(OutboxEntry.id.asc())
        .limit(limit)
        .all()
    )

    sent = 0
    failed = 0
    for entry in entries:
        entry.attempts += 1
        try:
            _dispatch(gateway, entry)
        except PersistenceError as exc:
            entry.status = OUTBOX_STATUS_FAILED
            entry.last_error = str(exc)
            failed += 1
            current_app.logger.warning("Outbox entry %s failed to sync: %s", entry.id, exc)
            notification_service.add_alert(
                "warning",
                "Sync degraded",
                f"Stock changes are saved locally but could not reach the catalog service: {exc}",
            )
            db.session.commit()
            break

        entry.status = OUTBOX_STATUS_SENT
        entry.sent_at = utcnow()
        entry.last_error = None
        sent += 1
        db.session.commit()

    return {"gateway": type(gateway).__name__, "sent": sent, "failed": failed, "outstanding": _outstanding_count()}


def _outstanding_count() -> int:
    return (
        db.session.query(OutboxEntry)
        .filter(OutboxEntry.status.in_([OUTBOX_STATUS_PENDING, OUTBOX_STATUS_FAILED]))
        .count()
    )


def outbox_status() -> dict:
    """Entry counts per status."""
    rows = (
        db.session.query(OutboxEntry.status, db.func.count(OutboxEntry.id))
        .group_by(OutboxEntry.status)
        .all()
    )
    counts = {OUTBOX_STATUS_PENDING: 0, OUTBOX_STATUS_SENT: 0, OUTBOX_STATUS_FAILED: 0}
    counts.update({status: int(count) for status, count in rows})
    return counts
