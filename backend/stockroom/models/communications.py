from __future__ import annotations

import json

from ..extensions import db
from stockroom.time_utils import to_utc_z


NOTIFICATION_TYPES = ("info", "success", "warning", "error")

OUTBOX_STATUS_PENDING = "PENDING"
OUTBOX_STATUS_SENT = "SENT"
OUTBOX_STATUS_FAILED = "FAILED"

OUTBOX_KIND_STOCK_MOVEMENT = "stock_movement"
OUTBOX_KIND_TRANSFER = "transfer"


class Notification(db.Model):
    """Human-readable event raised by the inventory core."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_store_created", "store_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, default="info")
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "store_id": self.store_id,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }


class OutboxEntry(db.Model):
    """
    Write-ahead record of a ledger change still owed to the remote
    catalog service. Written in the same transaction as the movement(s).
    """
    __tablename__ = "sync_outbox"
    __table_args__ = (
        db.Index("ix_sync_outbox_status_id", "status", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(32), nullable=False)
    payload = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=OUTBOX_STATUS_PENDING)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def payload_data(self) -> dict:
        return json.loads(self.payload)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "payload": self.payload_data,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "sent_at": to_utc_z(self.sent_at),
        }
